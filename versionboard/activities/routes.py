from typing import List

from fastapi import APIRouter, Depends

from versionboard.activities.schemas import Activity
from versionboard.auth.utils import AuthContext, require_authenticated
from versionboard.core.deps import get_storage
from versionboard.storage.base import Storage

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("", response_model=List[Activity], response_model_exclude_none=True)
def list_activities(
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.get_all_activities()
