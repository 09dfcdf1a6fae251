from sqlalchemy import Column, DateTime, String, Text

from versionboard.db import Base, JSONList


class ServiceModel(Base):
    __tablename__ = "services"

    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    icon = Column(String, nullable=False, default="cube")
    icon_color = Column(String, nullable=False, default="blue")
    available_versions = Column(JSONList, nullable=False, default=list)
    bau_version = Column(String, nullable=False)
    uat_version = Column(String, nullable=False)
    prod_version = Column(String, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False)
