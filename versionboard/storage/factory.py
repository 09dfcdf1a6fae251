import logging

from versionboard.core.config import DB_URL, STORAGE_BACKEND
from versionboard.storage.base import Storage
from versionboard.storage.memory import MemoryStorage
from versionboard.storage.sql import SqlStorage

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "sql")


def build_storage(backend: str = STORAGE_BACKEND, db_url: str = DB_URL) -> Storage:
    """Construct the configured backend. Unknown names fail at startup."""
    backend = backend.strip().lower()
    if backend == "memory":
        logger.info("Using in-memory storage")
        return MemoryStorage()
    if backend == "sql":
        logger.info("Using SQL storage")
        return SqlStorage(db_url)
    raise ValueError(f"Unknown storage backend '{backend}', expected one of {', '.join(BACKENDS)}")
