"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import logging
import os

from land_registry.config import settings
from land_registry.database import async_session_maker, init_db, close_db
from land_registry.exceptions import AppException
from land_registry.routers import (
    auth_router,
    users_router,
    properties_router,
    documents_router,
    payments_router,
    disputes_router,
    notifications_router,
    logs_router,
    reports_router,
    transfers_router,
)
from land_registry.services.email import get_email_service

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DOCUMENT_STORAGE = os.path.join(settings.STORAGE_PATH, "documents")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    os.makedirs(DOCUMENT_STORAGE, exist_ok=True)
    await init_db()
    logger.info(f"Database ready, documents stored under {DOCUMENT_STORAGE}")
    if not get_email_service().is_configured():
        logger.warning("SMTP is not configured; notifications will not be emailed")

    yield

    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Property registration, document verification, payments and disputes",
    docs_url=f"{settings.API_PREFIX}/docs" if settings.DEBUG else None,
    redoc_url=f"{settings.API_PREFIX}/redoc" if settings.DEBUG else None,
    openapi_url=f"{settings.API_PREFIX}/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Render AppException as {error, message, details, path}"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
            "path": str(request.url.path)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "path": str(request.url.path)
        }
    )


for router in (
    auth_router,
    users_router,
    properties_router,
    documents_router,
    payments_router,
    disputes_router,
    notifications_router,
    logs_router,
    reports_router,
    transfers_router,
):
    app.include_router(router, prefix=settings.API_PREFIX)


@app.get("/health")
async def health_check():
    """Liveness: the process is up"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


@app.get("/health/ready")
async def readiness_check():
    """Readiness: the database answers and document storage is writable"""
    checks = {"database": "connected", "storage": "writable"}
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed, database unavailable: {e}")
        checks["database"] = "disconnected"

    try:
        os.makedirs(DOCUMENT_STORAGE, exist_ok=True)
        writable = os.access(DOCUMENT_STORAGE, os.W_OK)
    except OSError:
        writable = False
    if not writable:
        logger.error(f"Readiness check failed, {DOCUMENT_STORAGE} is not writable")
        checks["storage"] = "unavailable"

    checks["email"] = "configured" if get_email_service().is_configured() else "disabled"
    ready = checks["database"] == "connected" and checks["storage"] == "writable"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", **checks, "version": settings.APP_VERSION},
    )


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api": settings.API_PREFIX,
        "docs": f"{settings.API_PREFIX}/docs" if settings.DEBUG else "Disabled in production"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "land_registry.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
