from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from statichost.core.config import get_settings, parse_comma_separated_origins
from statichost.core.error_handlers import register_exception_handlers
from statichost.core.telemetry import setup_telemetry
from statichost.database.database import create_db_and_tables
from statichost.exceptions import StorageError
from statichost.internal import admin
from statichost.routers import analytics, auth, download, sites
from statichost.services.storage import storage_service
from statichost.utils.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Perform application startup tasks before the FastAPI app begins serving requests.

    Runs logging setup, creates the database and tables, makes sure the sites bucket exists and initializes telemetry. An unreachable object store is logged and does not prevent startup.
    """
    setup_logging()
    create_db_and_tables()
    try:
        storage_service.ensure_bucket_exists()
    except (StorageError, Urllib3HTTPError) as e:
        logger.error(f"Object storage unavailable at startup: {e}")
    setup_telemetry(app)
    yield


app = FastAPI(
    title="StaticHost API",
    description="RESTful API for hosting and publishing static websites",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        str(origin).rstrip("/")
        for origin in parse_comma_separated_origins(get_settings().BACKEND_CORS_ORIGINS)
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health", include_in_schema=False)
def health_check():
    """
    Provide the application's liveness state for health checks.

    Returns:
        dict: A mapping with key "status" and value "ok" indicating the service is healthy.
    """
    return {"status": "ok"}


app.include_router(auth.router, prefix="/api")
app.include_router(sites.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(download.router)
