import logging

from fastapi import APIRouter, Depends, status

from versionboard.auth.utils import AuthContext, require_admin
from versionboard.core.deps import get_storage
from versionboard.storage.base import Storage
from versionboard.users.schemas import UserInput, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserInput,
    ctx: AuthContext = Depends(require_admin),
    storage: Storage = Depends(get_storage),
):
    user = storage.create_user(payload)
    logger.info("Admin %s created user %s", ctx.username, user.username)
    return UserResponse(user=user)
