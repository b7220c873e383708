import os

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import Base, SessionLocal, engine, get_db
from .errors import ServiceError, validation_message
from .logging import RequestIdMiddleware, setup_logging, structlog
from .auth.router import router as auth_router
from .routes.issues import router as issues_router
from .routes.locations import router as locations_router
from .routes.notifications import router as notifications_router
from .routes.analytics import router as analytics_router
from .routes.admin import router as admin_router
from .routes.uploads import router as uploads_router
from .routes.legacy import router as legacy_router
from .services.seed import seed_locations
from .storage.local_provider import PUBLIC_PREFIX


logger = structlog.get_logger(__name__)


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _error(400, validation_message(exc.errors()))

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        # Full detail stays in the server log
        logger.error("database_error", error=str(exc), exc_type=type(exc).__name__)
        return _error(500, "A server error occurred")

    # Sync: SlowAPIMiddleware calls this handler directly without awaiting it
    @app.exception_handler(RateLimitExceeded)
    def _rate_limited(request: Request, exc: RateLimitExceeded):
        logger.warning("rate_limited", client=get_remote_address(request), limit=str(exc.detail))
        return _error(429, "Too many requests")


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    _register_error_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(issues_router)
    app.include_router(locations_router)
    app.include_router(notifications_router)
    app.include_router(analytics_router)
    app.include_router(admin_router)
    app.include_router(uploads_router)
    app.include_router(legacy_router)

    # Uploaded photos and videos
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount(PUBLIC_PREFIX, StaticFiles(directory=settings.upload_dir), name="uploads")

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        db.execute(text("SELECT 1"))
        return {"success": True, "status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            db = SessionLocal()
            try:
                seed_locations(db)
            finally:
                db.close()
            logger.info("database_ready")

    return app


app = create_app()
