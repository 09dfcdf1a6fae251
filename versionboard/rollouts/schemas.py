from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from versionboard.core.schemas import CamelModel
from versionboard.services.schemas import Environment


def has_services(bau_services: Optional[str], uat_services: Optional[str]) -> bool:
    return bool((bau_services or "").strip() or (uat_services or "").strip())


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RequestInput(CamelModel):
    id: str = Field(..., min_length=1)
    request_name: str = Field(..., min_length=1)
    bau_services: str = ""
    uat_services: str = ""
    bau_delivery_date: Optional[date] = None
    uat_delivery_date: Optional[date] = None
    production_date: Optional[date] = None
    jira_epic_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator(
        "bau_delivery_date", "uat_delivery_date", "production_date", "jira_epic_link", "notes", mode="before"
    )
    @classmethod
    def optional_fields(cls, value):
        return _blank_to_none(value)

    @field_validator("id", "request_name")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field is required")
        return value

    @model_validator(mode="after")
    def check_services(self) -> "RequestInput":
        if not has_services(self.bau_services, self.uat_services):
            raise ValueError("At least one of bauServices or uatServices is required")
        return self


class RequestUpdate(CamelModel):
    request_name: Optional[str] = Field(None, min_length=1)
    bau_services: Optional[str] = None
    uat_services: Optional[str] = None
    bau_delivery_date: Optional[date] = None
    uat_delivery_date: Optional[date] = None
    production_date: Optional[date] = None
    jira_epic_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator(
        "bau_delivery_date", "uat_delivery_date", "production_date", "jira_epic_link", "notes", mode="before"
    )
    @classmethod
    def optional_fields(cls, value):
        return _blank_to_none(value)

    @field_validator("request_name")
    @classmethod
    def strip_request_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Field is required")
        return value


class RolloutRequest(CamelModel):
    id: str
    request_name: str
    bau_services: str = ""
    uat_services: str = ""
    bau_delivery_date: Optional[date] = None
    uat_delivery_date: Optional[date] = None
    production_date: Optional[date] = None
    jira_epic_link: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    def service_names(self, environment: Environment) -> List[str]:
        """Service names listed one per line for the BAU or UAT rollout."""
        if environment == Environment.BAU:
            text = self.bau_services
        elif environment == Environment.UAT:
            text = self.uat_services
        else:
            return []
        return [line.strip() for line in text.splitlines() if line.strip()]
