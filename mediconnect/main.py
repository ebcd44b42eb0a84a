from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import time
import logging

from .api.v1.admin import router as admin_router
from .api.v1.appointments import router as appointments_router
from .api.v1.auth import router as auth_router
from .api.v1.records import router as records_router
from .core.config import Settings, settings as default_settings
from .services.context import build_context
from .services.persistence import BackingStoreAdapter

logging.basicConfig(level=default_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

def _backend_name(database_url: str) -> str:
    for marker, name in (("postgresql", "PostgreSQL"), ("mysql", "MySQL"), ("sqlite", "SQLite")):
        if marker in database_url:
            return name
    return "unknown backend"

def create_app(
    settings: Optional[Settings] = None,
    adapter: Optional[BackingStoreAdapter] = None,
) -> FastAPI:
    """Build the API around a fresh clinic context.

    ``adapter`` replaces the backing store the settings would configure,
    which is how tests point the app at a throwaway database.
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Appointment booking and clinical records for doctors, patients and administrators",
        openapi_url=f"{API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.context = build_context(settings, adapter=adapter)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # TestClient sends Host: testserver
    if not settings.TESTING:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
        )

    @app.middleware("http")
    async def time_requests(request: Request, call_next):
        started = time.time()
        response = await call_next(request)
        elapsed = time.time() - started
        response.headers["X-Process-Time"] = str(elapsed)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.4f}s")
        return response

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: HTTPException):
        detail = getattr(exc, "detail", None)
        if not detail or detail == "Not Found":
            detail = "The requested resource was not found"
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "message": detail, "path": str(request.url.path)},
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "An unexpected error occurred"},
        )

    for router in (auth_router, appointments_router, records_router, admin_router):
        app.include_router(router, prefix=API_PREFIX)

    @app.on_event("startup")
    async def bootstrap_store():
        """Create tables, hydrate memory from the backing store and seed defaults."""
        context = app.state.context
        if context.store.mirroring:
            logger.info(f"Mirroring writes to {_backend_name(settings.get_database_url)}")
        else:
            logger.info("Backing store off; data lives in memory only")
        context.bootstrap()
        logger.info(f"{settings.APP_NAME} ready")

    @app.on_event("shutdown")
    async def report_mirror_health():
        store = app.state.context.store
        if store.mirror_failures:
            logger.warning(
                f"Shutting down with {store.mirror_failures} failed mirror writes; last: {store.last_mirror_error}"
            )
        else:
            logger.info(f"Shutting down {settings.APP_NAME}")

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": settings.VERSION,
            "mirroring": app.state.context.store.mirroring,
        }

    @app.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.APP_NAME} API",
            "version": settings.VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get(f"{API_PREFIX}/info")
    async def api_info():
        """Where each area of the API lives."""
        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "endpoints": {
                "authentication": f"{API_PREFIX}/auth",
                "appointments": f"{API_PREFIX}/appointments",
                "records": f"{API_PREFIX}/records",
                "admin": f"{API_PREFIX}/admin",
                "docs": "/docs",
                "openapi": f"{API_PREFIX}/openapi.json",
            },
        }

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mediconnect.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
        log_level="info",
    )
