from typing import List

from fastapi import APIRouter, Depends, status

from versionboard.auth.schemas import MessageResponse
from versionboard.auth.utils import AuthContext, require_authenticated
from versionboard.core.deps import get_storage
from versionboard.core.errors import NotFoundError
from versionboard.services.schemas import Service, ServiceInput, ServiceUpdate, VersionChange, VersionUpdate
from versionboard.storage.base import Storage

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[Service])
def list_services(
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.get_all_services()


@router.post("", response_model=Service, status_code=status.HTTP_201_CREATED)
def create_service(
    payload: ServiceInput,
    ctx: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.create_service_with_activity(payload, ctx.username)


@router.patch("/version", response_model=Service)
def update_service_version(
    payload: VersionUpdate,
    ctx: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    change = VersionChange(**payload.model_dump(), user=ctx.username)
    return storage.update_service_version(change)


@router.get("/{service_id}", response_model=Service)
def get_service(
    service_id: str,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    service = storage.get_service(service_id)
    if not service:
        raise NotFoundError("Service not found")
    return service


@router.put("/{service_id}", response_model=Service)
def update_service(
    service_id: str,
    payload: ServiceUpdate,
    ctx: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.update_service(service_id, payload, ctx.username)


@router.delete("/{service_id}", response_model=MessageResponse)
def delete_service(
    service_id: str,
    ctx: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    storage.delete_service(service_id, ctx.username)
    return MessageResponse(message="Service deleted")
