import logging
from typing import Dict, List, Optional

from versionboard.activities.schemas import Activity, ActivityAction, ActivityInput
from versionboard.core.errors import NotFoundError, ValidationError
from versionboard.rollouts.schemas import RequestInput, RequestUpdate, RolloutRequest
from versionboard.services.schemas import Service, ServiceInput, ServiceUpdate, VersionChange
from versionboard.storage.base import (
    Fields,
    Storage,
    apply_version_change,
    build_activity,
    build_request,
    build_service,
    coerce,
    describe_update,
    merge_request,
    merge_service,
    new_id,
    service_activity,
    version_change_activity,
)
from versionboard.users.schemas import User, UserInput

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """Process-local storage. Records are copied in and out so callers never alias stored state."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._users: Dict[str, User] = {}
        self._services: Dict[str, Service] = {}
        self._activities: List[Activity] = []
        self._requests: Dict[str, RolloutRequest] = {}

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user.model_copy()
        return None

    def create_user(self, fields: Fields) -> User:
        fields = coerce(UserInput, fields)
        with self._lock:
            if self.get_user_by_username(fields.username):
                raise ValidationError.for_field("username", "Username already exists")
            user = User(id=new_id(), **fields.model_dump())
            self._users[user.id] = user
        logger.info("Created user %s with role %s", user.username, user.role)
        return user.model_copy()

    def get_all_services(self) -> List[Service]:
        with self._lock:
            services = sorted(self._services.values(), key=lambda service: service.name)
            return [service.model_copy(deep=True) for service in services]

    def get_service(self, service_id: str) -> Optional[Service]:
        with self._lock:
            service = self._services.get(service_id)
            return service.model_copy(deep=True) if service else None

    def get_service_by_name(self, name: str) -> Optional[Service]:
        with self._lock:
            service = self._find_by_name(name)
            return service.model_copy(deep=True) if service else None

    def create_service(self, fields: Fields) -> Service:
        with self._lock:
            service = self._insert_service(coerce(ServiceInput, fields))
        return service.model_copy(deep=True)

    def create_service_with_activity(self, fields: Fields, acting_user: Optional[str]) -> Service:
        with self._lock:
            service = self._insert_service(coerce(ServiceInput, fields))
            self._append_activity(
                service_activity(ActivityAction.CREATED, service.name, f"Created service {service.name}", acting_user)
            )
        return service.model_copy(deep=True)

    def update_service(self, service_id: str, fields: Fields, acting_user: Optional[str]) -> Service:
        fields = coerce(ServiceUpdate, fields)
        with self._lock:
            service = self._services.get(service_id)
            if service is None:
                raise NotFoundError("Service not found")
            if fields.name is not None and fields.name != service.name and self._find_by_name(fields.name):
                raise ValidationError.for_field("name", "Service name already exists")
            updated, changed = merge_service(service, fields, self._clock())
            self._services[service_id] = updated
            self._append_activity(
                service_activity(ActivityAction.UPDATED, updated.name, describe_update(updated.name, changed), acting_user)
            )
        logger.info("Updated service %s (%s)", updated.name, ", ".join(changed) or "no changes")
        return updated.model_copy(deep=True)

    def delete_service(self, service_id: str, acting_user: Optional[str]) -> None:
        with self._lock:
            service = self._services.get(service_id)
            if service is None:
                raise NotFoundError("Service not found")
            self._append_activity(
                service_activity(ActivityAction.DELETED, service.name, f"Deleted service {service.name}", acting_user)
            )
            del self._services[service_id]
        logger.info("Deleted service %s", service.name)

    def update_service_version(self, change: Fields) -> Service:
        change = coerce(VersionChange, change)
        with self._lock:
            service = self._find_by_name(change.service_name)
            if service is None:
                raise NotFoundError(f"Service {change.service_name} not found")
            updated, old_version = apply_version_change(service, change, self._clock())
            self._services[updated.id] = updated
            self._append_activity(version_change_activity(change, old_version))
        logger.info(
            "Service %s %s: %s -> %s", change.service_name, change.environment.value, old_version, change.version
        )
        return updated.model_copy(deep=True)

    def get_all_activities(self) -> List[Activity]:
        with self._lock:
            # Newest insert first among equal timestamps; sorted() is stable.
            newest_first = sorted(reversed(self._activities), key=lambda activity: activity.timestamp, reverse=True)
            return [activity.model_copy() for activity in newest_first]

    def create_activity(self, fields: Fields) -> Activity:
        fields = coerce(ActivityInput, fields)
        with self._lock:
            activity = self._append_activity(fields)
        return activity.model_copy()

    def get_all_requests(self) -> List[RolloutRequest]:
        with self._lock:
            newest_first = sorted(reversed(list(self._requests.values())), key=lambda r: r.created_at, reverse=True)
            return [request.model_copy() for request in newest_first]

    def get_request(self, request_id: str) -> Optional[RolloutRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return request.model_copy() if request else None

    def create_request(self, fields: Fields) -> RolloutRequest:
        fields = coerce(RequestInput, fields)
        with self._lock:
            if fields.id in self._requests:
                raise ValidationError.for_field("id", "Request id already exists")
            request = build_request(fields, self._clock())
            self._requests[request.id] = request
        logger.info("Created rollout request %s", request.id)
        return request.model_copy()

    def update_request(self, request_id: str, fields: Fields) -> RolloutRequest:
        fields = coerce(RequestUpdate, fields)
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise NotFoundError("Request not found")
            updated = merge_request(request, fields)
            self._requests[request_id] = updated
        logger.info("Updated rollout request %s", request_id)
        return updated.model_copy()

    def delete_request(self, request_id: str) -> None:
        with self._lock:
            if self._requests.pop(request_id, None) is None:
                raise NotFoundError("Request not found")
        logger.info("Deleted rollout request %s", request_id)

    def _find_by_name(self, name: str) -> Optional[Service]:
        for service in self._services.values():
            if service.name == name:
                return service
        return None

    def _insert_service(self, fields: ServiceInput) -> Service:
        if self._find_by_name(fields.name):
            raise ValidationError.for_field("name", "Service name already exists")
        service = build_service(fields, new_id(), self._clock())
        self._services[service.id] = service
        logger.info("Created service %s", service.name)
        return service

    def _append_activity(self, fields: ActivityInput) -> Activity:
        activity = build_activity(fields, new_id(), self._clock(), self._default_user)
        self._activities.append(activity)
        return activity
