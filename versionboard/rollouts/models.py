from sqlalchemy import Column, Date, DateTime, String, Text

from versionboard.db import Base


class RolloutRequestModel(Base):
    __tablename__ = "rollout_requests"

    id = Column(String, primary_key=True)
    request_name = Column(String, nullable=False)
    bau_services = Column(Text, nullable=False, default="")
    uat_services = Column(Text, nullable=False, default="")
    bau_delivery_date = Column(Date, nullable=True)
    uat_delivery_date = Column(Date, nullable=True)
    production_date = Column(Date, nullable=True)
    jira_epic_link = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
