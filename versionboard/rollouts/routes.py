from typing import List

from fastapi import APIRouter, Depends, status

from versionboard.auth.schemas import MessageResponse
from versionboard.auth.utils import AuthContext, require_authenticated
from versionboard.core.deps import get_storage
from versionboard.core.errors import NotFoundError
from versionboard.rollouts.schemas import RequestInput, RequestUpdate, RolloutRequest
from versionboard.services.schemas import Environment
from versionboard.storage.base import Storage

router = APIRouter(prefix="/requests", tags=["requests"])


@router.get("", response_model=List[RolloutRequest])
def list_requests(
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.get_all_requests()


@router.post("", response_model=RolloutRequest, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: RequestInput,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.create_request(payload)


@router.get("/{request_id}", response_model=RolloutRequest)
def get_request(
    request_id: str,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    request = storage.get_request(request_id)
    if not request:
        raise NotFoundError("Request not found")
    return request


@router.put("/{request_id}", response_model=RolloutRequest)
def update_request(
    request_id: str,
    payload: RequestUpdate,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.update_request(request_id, payload)


@router.delete("/{request_id}", response_model=MessageResponse)
def delete_request(
    request_id: str,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    storage.delete_request(request_id)
    return MessageResponse(message="Request deleted")


@router.get("/{request_id}/services/{environment}", response_model=List[str])
def list_request_services(
    request_id: str,
    environment: Environment,
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    request = storage.get_request(request_id)
    if not request:
        raise NotFoundError("Request not found")
    return request.service_names(environment)
