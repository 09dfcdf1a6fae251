from fastapi import APIRouter, Depends

from versionboard.auth.utils import AuthContext, require_authenticated
from versionboard.core.deps import get_storage
from versionboard.stats.schemas import Stats
from versionboard.storage.base import Storage

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=Stats)
def get_stats(
    _: AuthContext = Depends(require_authenticated),
    storage: Storage = Depends(get_storage),
):
    return storage.get_stats()
