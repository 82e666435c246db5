# fileshare/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fileshare.core.clock import Clock, utc_now
from fileshare.core.errors import FileShareError
from fileshare.core.logging_config import logger, setup_logging
from fileshare.core.settings import Settings, get_settings
from fileshare.middleware import LoggingMiddleware, NoContentCORSMiddleware, UploadSizeLimitMiddleware
from fileshare.routers import fileshare
from fileshare.schemas.fileshare import ErrorResponse
from fileshare.services.fileshare_service import FileShareService
from fileshare.services.sweeper import SweepScheduler


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


def create_app(settings: Optional[Settings] = None, *, clock: Clock = utc_now) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    service = FileShareService(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if settings.SWEEP_INTERVAL_SECONDS > 0:
            scheduler = SweepScheduler(service.sweeper, settings.SWEEP_INTERVAL_SECONDS)
            scheduler.start()
        logger.info(
            "startup",
            service="fileshare",
            ttl_hours=settings.TTL_HOURS,
            max_upload_bytes=settings.MAX_UPLOAD_BYTES,
        )
        yield
        if scheduler is not None:
            await scheduler.stop()

    # ----------------------------------------------------
    # App init
    # ----------------------------------------------------
    app = FastAPI(title="FileShare", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.fileshare_service = service

    # ----------------------------------------------------
    # Health
    # ----------------------------------------------------
    @app.get("/health", include_in_schema=True)
    def health() -> dict:
        return {"status": "ok"}

    # ----------------------------------------------------
    # Error handlers: altijd {success: false, error: "..."}
    # ----------------------------------------------------
    @app.exception_handler(FileShareError)
    def fileshare_error_handler(request: Request, exc: FileShareError):
        return _error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error("Invalid request", 400)

    @app.exception_handler(StarletteHTTPException)
    def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Unsupported request" if exc.status_code == 405 else str(exc.detail)
        return _error(message, exc.status_code)

    @app.exception_handler(Exception)
    def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", endpoint=str(request.url.path))
        return _error("Internal server error", 500)

    # ----------------------------------------------------
    # Middleware
    # ----------------------------------------------------
    app.add_middleware(
        UploadSizeLimitMiddleware,
        max_body_bytes=settings.MAX_UPLOAD_BYTES + settings.UPLOAD_OVERHEAD_BYTES,
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        NoContentCORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Requested-With"],
        expose_headers=[fileshare.FILENAME_HEADER],
    )

    # ----------------------------------------------------
    # Routers
    # ----------------------------------------------------
    app.include_router(fileshare.router)

    return app


app = create_app()
