from datetime import datetime
from enum import Enum
from typing import Iterable, List, Literal, Optional

from pydantic import Field, field_validator

from versionboard.core.schemas import CamelModel

DEFAULT_VERSION = "0.1.0"

ServiceIcon = Literal["cube", "shield-alt", "credit-card", "envelope", "users", "database", "server", "cloud"]
IconColor = Literal["blue", "green", "purple", "yellow", "red"]


class Environment(str, Enum):
    BAU = "bau"
    UAT = "uat"
    PROD = "prod"


ENVIRONMENT_FIELDS = {
    Environment.BAU: "bau_version",
    Environment.UAT: "uat_version",
    Environment.PROD: "prod_version",
}


def normalize_versions(versions: Iterable[Optional[str]]) -> List[str]:
    """Trim, drop blanks and duplicates, keep first-seen order."""
    result: List[str] = []
    for version in versions:
        if version is None:
            continue
        version = version.strip()
        if version and version not in result:
            result.append(version)
    return result


def _required_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Service name is required")
    return value


def _required_version(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Version is required")
    return value


class ServiceInput(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    icon: ServiceIcon = "cube"
    icon_color: IconColor = "blue"
    available_versions: Optional[List[str]] = None
    bau_version: str = DEFAULT_VERSION
    uat_version: str = DEFAULT_VERSION
    prod_version: str = DEFAULT_VERSION

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _required_name(value)

    @field_validator("bau_version", "uat_version", "prod_version")
    @classmethod
    def check_versions(cls, value: str) -> str:
        return _required_version(value)


class ServiceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    icon: Optional[ServiceIcon] = None
    icon_color: Optional[IconColor] = None
    available_versions: Optional[List[str]] = None
    bau_version: Optional[str] = None
    uat_version: Optional[str] = None
    prod_version: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _required_name(value)

    @field_validator("bau_version", "uat_version", "prod_version")
    @classmethod
    def check_versions(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _required_version(value)


class Service(CamelModel):
    id: str
    name: str
    description: str = ""
    icon: ServiceIcon = "cube"
    icon_color: IconColor = "blue"
    available_versions: List[str] = Field(default_factory=list)
    bau_version: str
    uat_version: str
    prod_version: str
    last_updated: datetime

    def version_for(self, environment: Environment) -> str:
        if environment == Environment.BAU:
            return self.bau_version
        if environment == Environment.UAT:
            return self.uat_version
        return self.prod_version

    def deployed_versions(self) -> List[str]:
        return [self.bau_version, self.uat_version, self.prod_version]


class VersionUpdate(CamelModel):
    service_name: str = Field(..., min_length=1)
    environment: Environment
    version: str = Field(..., min_length=1)

    @field_validator("version")
    @classmethod
    def strip_version(cls, value: str) -> str:
        return _required_version(value)


class VersionChange(VersionUpdate):
    user: str = ""
