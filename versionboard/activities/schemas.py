from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from versionboard.core.schemas import CamelModel
from versionboard.services.schemas import Environment


class ActivityAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    VERSION_CHANGE = "version_change"


class ActivityInput(CamelModel):
    action: ActivityAction = ActivityAction.VERSION_CHANGE
    service_name: str = Field(..., min_length=1)
    environment: Optional[Environment] = None
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    details: Optional[str] = None
    user: Optional[str] = None

    @model_validator(mode="after")
    def check_shape(self) -> "ActivityInput":
        if self.action == ActivityAction.VERSION_CHANGE:
            if self.environment is None or not self.to_version:
                raise ValueError("version_change activities need environment and toVersion")
        elif self.environment is not None or self.from_version is not None or self.to_version is not None:
            raise ValueError(f"{self.action.value} activities carry details, not version fields")
        return self


class Activity(CamelModel):
    id: str
    action: ActivityAction
    service_name: str
    environment: Optional[Environment] = None
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    details: Optional[str] = None
    user: str
    timestamp: datetime
