import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from versionboard.activities.routes import router as activities_router
from versionboard.auth.routes import router as auth_router
from versionboard.core.config import APP_NAME, CORS_ORIGINS, SEED_SAMPLE_DATA
from versionboard.core.errors import BackendError, ValidationError, VersionBoardError
from versionboard.core.logging_config import setup_logging
from versionboard.rollouts.routes import router as rollouts_router
from versionboard.services.routes import router as services_router
from versionboard.stats.routes import router as stats_router
from versionboard.storage.base import field_errors
from versionboard.storage.factory import build_storage
from versionboard.storage.seed import seed_storage
from versionboard.users.routes import router as users_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.info(
        "%s %s -> %s (%sms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


@app.exception_handler(VersionBoardError)
async def handle_domain_error(request: Request, exc: VersionBoardError) -> JSONResponse:
    if isinstance(exc, BackendError):
        logger.error("Backend failure on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Invalid request data", "errors": field_errors(exc)})


@app.on_event("startup")
def on_startup() -> None:
    if getattr(app.state, "storage", None) is None:
        app.state.storage = build_storage()
    seed_storage(app.state.storage, sample_data=SEED_SAMPLE_DATA)


@app.on_event("shutdown")
def on_shutdown() -> None:
    storage = getattr(app.state, "storage", None)
    if storage is not None:
        storage.close()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(services_router)
app.include_router(activities_router)
app.include_router(stats_router)
app.include_router(users_router)
app.include_router(rollouts_router)
