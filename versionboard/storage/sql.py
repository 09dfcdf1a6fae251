import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from versionboard.activities.models import ActivityModel
from versionboard.activities.schemas import Activity, ActivityAction, ActivityInput
from versionboard.core.config import DB_URL
from versionboard.core.errors import BackendError, NotFoundError, ValidationError
from versionboard.db import Base, create_db_engine, create_session_factory
from versionboard.rollouts.models import RolloutRequestModel
from versionboard.rollouts.schemas import RequestInput, RequestUpdate, RolloutRequest
from versionboard.services.models import ServiceModel
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
from versionboard.users.models import UserModel
from versionboard.users.schemas import User, UserInput

logger = logging.getLogger(__name__)

SERVICE_COLUMNS = (
    "name",
    "description",
    "icon",
    "icon_color",
    "available_versions",
    "bau_version",
    "uat_version",
    "prod_version",
    "last_updated",
)
REQUEST_COLUMNS = (
    "request_name",
    "bau_services",
    "uat_services",
    "bau_delivery_date",
    "uat_delivery_date",
    "production_date",
    "jira_epic_link",
    "notes",
)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset; values are always written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _service_from_row(row: ServiceModel) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        description=row.description,
        icon=row.icon,
        icon_color=row.icon_color,
        available_versions=list(row.available_versions or []),
        bau_version=row.bau_version,
        uat_version=row.uat_version,
        prod_version=row.prod_version,
        last_updated=_as_utc(row.last_updated),
    )


def _apply_service(row: ServiceModel, service: Service) -> None:
    for column in SERVICE_COLUMNS:
        value = getattr(service, column)
        # New list object so the JSON column is flagged dirty.
        setattr(row, column, list(value) if column == "available_versions" else value)


def _activity_from_row(row: ActivityModel) -> Activity:
    return Activity(
        id=row.id,
        action=row.action,
        service_name=row.service_name,
        environment=row.environment,
        from_version=row.from_version,
        to_version=row.to_version,
        details=row.details,
        user=row.user,
        timestamp=_as_utc(row.timestamp),
    )


def _activity_row(activity: Activity) -> ActivityModel:
    return ActivityModel(
        id=activity.id,
        action=activity.action.value,
        service_name=activity.service_name,
        environment=activity.environment.value if activity.environment else None,
        from_version=activity.from_version,
        to_version=activity.to_version,
        details=activity.details,
        user=activity.user,
        timestamp=activity.timestamp,
    )


def _user_from_row(row: UserModel) -> User:
    return User(id=row.id, username=row.username, role=row.role)


def _request_from_row(row: RolloutRequestModel) -> RolloutRequest:
    return RolloutRequest(
        id=row.id,
        created_at=_as_utc(row.created_at),
        **{column: getattr(row, column) for column in REQUEST_COLUMNS},
    )


class SqlStorage(Storage):
    """SQLAlchemy-backed storage. Each operation commits in a single transaction."""

    def __init__(self, db_url: str = DB_URL, engine: Optional[Engine] = None, **kwargs):
        super().__init__(**kwargs)
        self._engine = engine if engine is not None else create_db_engine(db_url)
        self._session_factory = create_session_factory(self._engine)
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as exc:
            logger.exception("Could not prepare the database schema")
            raise BackendError("Storage backend unavailable") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Integrity error: %s", exc.orig)
            raise ValidationError("Record conflicts with an existing entry") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Storage backend failure")
            raise BackendError("Storage backend unavailable") from exc
        finally:
            db.close()

    def close(self) -> None:
        self._engine.dispose()

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as db:
            row = db.get(UserModel, user_id)
            return _user_from_row(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._session() as db:
            row = db.query(UserModel).filter(UserModel.username == username).first()
            return _user_from_row(row) if row else None

    def create_user(self, fields: Fields) -> User:
        fields = coerce(UserInput, fields)
        with self._lock, self._session() as db:
            if db.query(UserModel).filter(UserModel.username == fields.username).first():
                raise ValidationError.for_field("username", "Username already exists")
            row = UserModel(id=new_id(), username=fields.username, role=fields.role)
            db.add(row)
            db.commit()
            user = _user_from_row(row)
        logger.info("Created user %s with role %s", user.username, user.role)
        return user

    # Services

    def get_all_services(self) -> List[Service]:
        with self._session() as db:
            rows = db.query(ServiceModel).all()
            services = [_service_from_row(row) for row in rows]
        # Sorted here rather than in SQL so database collation cannot change the order.
        return sorted(services, key=lambda service: service.name)

    def get_service(self, service_id: str) -> Optional[Service]:
        with self._session() as db:
            row = db.get(ServiceModel, service_id)
            return _service_from_row(row) if row else None

    def get_service_by_name(self, name: str) -> Optional[Service]:
        with self._session() as db:
            row = self._service_row_by_name(db, name)
            return _service_from_row(row) if row else None

    def create_service(self, fields: Fields) -> Service:
        fields = coerce(ServiceInput, fields)
        with self._lock, self._session() as db:
            service = self._insert_service(db, fields)
            db.commit()
        logger.info("Created service %s", service.name)
        return service

    def create_service_with_activity(self, fields: Fields, acting_user: Optional[str]) -> Service:
        fields = coerce(ServiceInput, fields)
        with self._lock, self._session() as db:
            service = self._insert_service(db, fields)
            self._add_activity(
                db, service_activity(ActivityAction.CREATED, service.name, f"Created service {service.name}", acting_user)
            )
            db.commit()
        logger.info("Created service %s", service.name)
        return service

    def update_service(self, service_id: str, fields: Fields, acting_user: Optional[str]) -> Service:
        fields = coerce(ServiceUpdate, fields)
        with self._lock, self._session() as db:
            row = db.get(ServiceModel, service_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Service not found")
            if fields.name is not None and fields.name != row.name and self._service_row_by_name(db, fields.name):
                raise ValidationError.for_field("name", "Service name already exists")
            updated, changed = merge_service(_service_from_row(row), fields, self._clock())
            _apply_service(row, updated)
            self._add_activity(
                db,
                service_activity(ActivityAction.UPDATED, updated.name, describe_update(updated.name, changed), acting_user),
            )
            db.commit()
        logger.info("Updated service %s (%s)", updated.name, ", ".join(changed) or "no changes")
        return updated

    def delete_service(self, service_id: str, acting_user: Optional[str]) -> None:
        with self._lock, self._session() as db:
            row = db.get(ServiceModel, service_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Service not found")
            name = row.name
            self._add_activity(
                db, service_activity(ActivityAction.DELETED, name, f"Deleted service {name}", acting_user)
            )
            db.delete(row)
            db.commit()
        logger.info("Deleted service %s", name)

    def update_service_version(self, change: Fields) -> Service:
        change = coerce(VersionChange, change)
        with self._lock, self._session() as db:
            row = self._service_row_by_name(db, change.service_name, for_update=True)
            if row is None:
                raise NotFoundError(f"Service {change.service_name} not found")
            updated, old_version = apply_version_change(_service_from_row(row), change, self._clock())
            _apply_service(row, updated)
            self._add_activity(db, version_change_activity(change, old_version))
            db.commit()
        logger.info(
            "Service %s %s: %s -> %s", change.service_name, change.environment.value, old_version, change.version
        )
        return updated

    # Activities

    def get_all_activities(self) -> List[Activity]:
        with self._session() as db:
            rows = (
                db.query(ActivityModel)
                .order_by(ActivityModel.timestamp.desc(), ActivityModel.seq.desc())
                .all()
            )
            return [_activity_from_row(row) for row in rows]

    def create_activity(self, fields: Fields) -> Activity:
        fields = coerce(ActivityInput, fields)
        with self._lock, self._session() as db:
            activity = self._add_activity(db, fields)
            db.commit()
        return activity

    # Rollout requests

    def get_all_requests(self) -> List[RolloutRequest]:
        with self._session() as db:
            rows = db.query(RolloutRequestModel).order_by(RolloutRequestModel.created_at.desc()).all()
            return [_request_from_row(row) for row in rows]

    def get_request(self, request_id: str) -> Optional[RolloutRequest]:
        with self._session() as db:
            row = db.get(RolloutRequestModel, request_id)
            return _request_from_row(row) if row else None

    def create_request(self, fields: Fields) -> RolloutRequest:
        fields = coerce(RequestInput, fields)
        with self._lock, self._session() as db:
            if db.get(RolloutRequestModel, fields.id) is not None:
                raise ValidationError.for_field("id", "Request id already exists")
            request = build_request(fields, self._clock())
            db.add(RolloutRequestModel(id=request.id, created_at=request.created_at, **fields.model_dump(exclude={"id"})))
            db.commit()
        logger.info("Created rollout request %s", request.id)
        return request

    def update_request(self, request_id: str, fields: Fields) -> RolloutRequest:
        fields = coerce(RequestUpdate, fields)
        with self._lock, self._session() as db:
            row = db.get(RolloutRequestModel, request_id, with_for_update=True)
            if row is None:
                raise NotFoundError("Request not found")
            updated = merge_request(_request_from_row(row), fields)
            for column in REQUEST_COLUMNS:
                setattr(row, column, getattr(updated, column))
            db.commit()
        logger.info("Updated rollout request %s", request_id)
        return updated

    def delete_request(self, request_id: str) -> None:
        with self._lock, self._session() as db:
            row = db.get(RolloutRequestModel, request_id)
            if row is None:
                raise NotFoundError("Request not found")
            db.delete(row)
            db.commit()
        logger.info("Deleted rollout request %s", request_id)

    def _service_row_by_name(self, db: Session, name: str, for_update: bool = False) -> Optional[ServiceModel]:
        query = db.query(ServiceModel).filter(ServiceModel.name == name)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _insert_service(self, db: Session, fields: ServiceInput) -> Service:
        if self._service_row_by_name(db, fields.name):
            raise ValidationError.for_field("name", "Service name already exists")
        service = build_service(fields, new_id(), self._clock())
        row = ServiceModel(id=service.id)
        _apply_service(row, service)
        db.add(row)
        return service

    def _add_activity(self, db: Session, fields: ActivityInput) -> Activity:
        activity = build_activity(fields, new_id(), self._clock(), self._default_user)
        db.add(_activity_row(activity))
        return activity
