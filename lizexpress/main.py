# lizexpress/main.py
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from lizexpress import __version__
from lizexpress import models  # noqa: F401  (registreert SQLAlchemy modellen)
from lizexpress.core.logging_config import logger, setup_logging
from lizexpress.core.settings import settings
from lizexpress.db import Base, engine
from lizexpress.observability.metrics import router as metrics_router
from lizexpress.routers import verification
from lizexpress.workflow.registry import registry

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title="LizExpress Verification", version=__version__)

setup_logging()


@app.on_event("startup")
def _startup() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("startup", service="lizexpress-verification", storage=settings.STORAGE_BACKEND)


@app.on_event("shutdown")
def _shutdown() -> None:
    # open pogingen sluiten zodat geen camera-sessie blijft hangen
    registry.close_all()


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()
    bound_logger = logger.bind(
        request_id=request.headers.get("X-Request-ID", "unknown"),
        user_id=request.headers.get("X-User-Id", "anonymous"),
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(verification.router)
if settings.metrics_enabled:
    app.include_router(metrics_router)

if settings.STORAGE_BACKEND.lower() == "local":
    # LocalStorage.public_url -> /files/{bucket}/{key}
    _files_root = Path(settings.LOCAL_STORAGE_ROOT)
    _files_root.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=str(_files_root)), name="files")
