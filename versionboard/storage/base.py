import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from versionboard.activities.schemas import Activity, ActivityAction, ActivityInput
from versionboard.core.config import DEFAULT_ACTIVITY_USER
from versionboard.core.errors import ValidationError
from versionboard.rollouts.schemas import RequestInput, RequestUpdate, RolloutRequest, has_services
from versionboard.services.schemas import (
    ENVIRONMENT_FIELDS,
    Service,
    ServiceInput,
    ServiceUpdate,
    VersionChange,
    normalize_versions,
)
from versionboard.stats.schemas import Stats
from versionboard.users.schemas import User

Clock = Callable[[], datetime]
Fields = Union[BaseModel, Mapping[str, Any]]
ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def field_errors(exc) -> List[Dict[str, str]]:
    """Flatten pydantic (or FastAPI request) validation errors into field/message pairs."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err["loc"] if part != "body"]
        errors.append({"field": ".".join(loc) or "body", "message": err["msg"]})
    return errors


def coerce(model_cls: Type[ModelT], fields: Fields) -> ModelT:
    """Validate caller input into ``model_cls``; pydantic errors become ``ValidationError``."""
    if isinstance(fields, model_cls):
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(fields)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid data", errors=field_errors(exc)) from exc


def build_service(fields: ServiceInput, service_id: str, now: datetime) -> Service:
    if not fields.name.strip():
        raise ValidationError.for_field("name", "Service name is required")
    data = fields.model_dump()
    versions = data.pop("available_versions")
    if versions is None:
        versions = [fields.bau_version, fields.uat_version, fields.prod_version]
    return Service(id=service_id, available_versions=normalize_versions(versions), last_updated=now, **data)


def merge_service(service: Service, fields: ServiceUpdate, now: datetime) -> Tuple[Service, List[str]]:
    """Apply the supplied (non-null) fields; return the merged record and the names that changed.

    The post-merge environment versions are folded back into ``available_versions``.
    """
    changes = {key: value for key, value in fields.model_dump(exclude_unset=True).items() if value is not None}
    merged = service.model_copy(update=changes)
    available = normalize_versions(list(merged.available_versions) + merged.deployed_versions())
    merged = merged.model_copy(update={"available_versions": available, "last_updated": now})
    changed = [key for key in ServiceUpdate.model_fields if getattr(service, key) != getattr(merged, key)]
    return merged, changed


def apply_version_change(service: Service, change: VersionChange, now: datetime) -> Tuple[Service, str]:
    """Set one environment's version and reconcile ``available_versions``.

    Known versions are never dropped: the result is the previous list plus
    whatever the three environments now point at, deduplicated.
    """
    old_version = service.version_for(change.environment)
    updated = service.model_copy(update={ENVIRONMENT_FIELDS[change.environment]: change.version})
    available = normalize_versions(list(service.available_versions) + updated.deployed_versions())
    return updated.model_copy(update={"available_versions": available, "last_updated": now}), old_version


def version_change_activity(change: VersionChange, old_version: str) -> ActivityInput:
    return ActivityInput(
        action=ActivityAction.VERSION_CHANGE,
        service_name=change.service_name,
        environment=change.environment,
        from_version=old_version,
        to_version=change.version,
        user=change.user,
    )


def service_activity(action: ActivityAction, service_name: str, details: str, user: Optional[str]) -> ActivityInput:
    return ActivityInput(action=action, service_name=service_name, details=details, user=user)


def describe_update(service_name: str, changed: Iterable[str]) -> str:
    changed = list(changed)
    if not changed:
        return f"Saved service {service_name} without changes"
    return f"Updated service {service_name}: {', '.join(changed)}"


def build_activity(fields: ActivityInput, activity_id: str, now: datetime, fallback_user: str) -> Activity:
    data = fields.model_dump()
    data["user"] = (fields.user or "").strip() or fallback_user
    return Activity(id=activity_id, timestamp=now, **data)


def build_request(fields: RequestInput, now: datetime) -> RolloutRequest:
    return RolloutRequest(created_at=now, **fields.model_dump())


def merge_request(request: RolloutRequest, fields: RequestUpdate) -> RolloutRequest:
    changes = fields.model_dump(exclude_unset=True)
    for key in ("request_name", "bau_services", "uat_services"):
        if key in changes and changes[key] is None:
            del changes[key]
    merged = request.model_copy(update=changes)
    if not has_services(merged.bau_services, merged.uat_services):
        raise ValidationError.for_field("bauServices", "At least one of bauServices or uatServices is required")
    return merged


def compute_stats(services: Iterable[Service]) -> Stats:
    stats = Stats()
    for service in services:
        stats.total_services += 1
        if service.prod_version in service.available_versions:
            stats.prod_ready_services += 1
        if service.uat_version != service.prod_version:
            stats.uat_services += 1
        if service.bau_version != service.prod_version or service.uat_version != service.prod_version:
            stats.pending_updates += 1
    return stats


class Storage(ABC):
    """Owner of all persisted state.

    Every read-modify-write operation runs under ``self._lock``, so two
    version changes against the same service never interleave. Lookups
    return ``None`` for missing records; mutations raise ``NotFoundError``.
    """

    def __init__(self, clock: Clock = utcnow, default_user: str = DEFAULT_ACTIVITY_USER):
        self._clock = clock
        self._default_user = default_user
        self._lock = threading.RLock()

    # Users

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    def create_user(self, fields: Fields) -> User:
        ...

    # Services

    @abstractmethod
    def get_all_services(self) -> List[Service]:
        ...

    @abstractmethod
    def get_service(self, service_id: str) -> Optional[Service]:
        ...

    @abstractmethod
    def get_service_by_name(self, name: str) -> Optional[Service]:
        ...

    @abstractmethod
    def create_service(self, fields: Fields) -> Service:
        ...

    @abstractmethod
    def create_service_with_activity(self, fields: Fields, acting_user: Optional[str]) -> Service:
        ...

    @abstractmethod
    def update_service(self, service_id: str, fields: Fields, acting_user: Optional[str]) -> Service:
        ...

    @abstractmethod
    def delete_service(self, service_id: str, acting_user: Optional[str]) -> None:
        ...

    @abstractmethod
    def update_service_version(self, change: Fields) -> Service:
        ...

    # Activities

    @abstractmethod
    def get_all_activities(self) -> List[Activity]:
        ...

    @abstractmethod
    def create_activity(self, fields: Fields) -> Activity:
        ...

    # Rollout requests

    @abstractmethod
    def get_all_requests(self) -> List[RolloutRequest]:
        ...

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[RolloutRequest]:
        ...

    @abstractmethod
    def create_request(self, fields: Fields) -> RolloutRequest:
        ...

    @abstractmethod
    def update_request(self, request_id: str, fields: Fields) -> RolloutRequest:
        ...

    @abstractmethod
    def delete_request(self, request_id: str) -> None:
        ...

    def get_stats(self) -> Stats:
        return compute_stats(self.get_all_services())

    def close(self) -> None:
        pass
