from contextlib import asynccontextmanager
from typing import Any, cast

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from sanctuary.api import analytics, auth, downloads
from sanctuary.core.config import settings
from sanctuary.core.errors import capture_exception, init_sentry
from sanctuary.core.logging_config import get_logger
from sanctuary.core.scheduler import start_scheduler, stop_scheduler
from sanctuary.db import create_db_and_tables
from sanctuary.middleware.context import RequestContextMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Sanctuary analytics API starting", environment=settings.ENVIRONMENT)
    create_db_and_tables()
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    if settings.RUN_SCHEDULER:
        start_scheduler()
    else:
        logger.info("RUN_SCHEDULER is false, skipping scheduler startup in this process")

    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_PREFIX}/openapi.json", lifespan=lifespan)

# Clean up duplicates and empty strings
origins = sorted({o for o in [*settings.CORS_ORIGINS, settings.FRONTEND_URL] if o})

app.add_middleware(cast(Any, RequestContextMiddleware))
app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    capture_exception(exc, context={"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["auth"])
app.include_router(analytics.router, prefix=f"{settings.API_PREFIX}/analytics", tags=["analytics"])
app.include_router(downloads.router, prefix=f"{settings.API_PREFIX}/downloads", tags=["downloads"])


@app.get("/")
def root():
    return {"message": "Welcome to the Sanctuary analytics API"}


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "healthy"}


def run():
    uvicorn.run("sanctuary.main:app", host="0.0.0.0", port=8000, proxy_headers=True, forwarded_allow_ips="*")
