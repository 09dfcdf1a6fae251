from sqlalchemy import Column, DateTime, Integer, String, Text

from versionboard.db import Base


class ActivityModel(Base):
    __tablename__ = "activities"

    # Insertion order, used to break timestamp ties.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), nullable=False, unique=True, index=True)
    action = Column(String, nullable=False, default="version_change")
    service_name = Column(String, nullable=False, index=True)
    environment = Column(String, nullable=True)
    from_version = Column(String, nullable=True)
    to_version = Column(String, nullable=True)
    details = Column(Text, nullable=True)
    user = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
