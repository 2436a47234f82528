"""AumOS Usage Engine service entry point.

Creates the FastAPI application with lifespan management for logging and
the per-subject engine registry.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from aumos_usage_engine.api.router import router
from aumos_usage_engine.core.errors import EngineError, InvalidInputError, NotFoundError
from aumos_usage_engine.core.services import EngineRegistry
from aumos_usage_engine.observability import configure_logging, get_logger
from aumos_usage_engine.settings import Settings

logger = get_logger(__name__)

VERSION = "0.1.0"


def _status_for(exc: EngineError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidInputError):
        return 422
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Engine settings; read from the environment if omitted.

    Returns:
        Configured FastAPI application with the router mounted under /api/v1.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Configure logging on startup and discard all engines on shutdown.

        Args:
            app: The FastAPI application instance.

        Yields:
            None
        """
        configure_logging(settings.log_level, json_output=settings.log_json)
        logger.info("Starting AumOS Usage Engine", version=VERSION)
        yield
        logger.info("Usage Engine shutdown complete", subjects=len(app.state.registry))

    app = FastAPI(title="AumOS Usage Engine", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = EngineRegistry(settings)

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        status_code = _status_for(exc)
        logger.warning(
            "Request rejected",
            path=request.url.path,
            error_code=exc.error_code.value,
            status_code=status_code,
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        return {
            "status": "ok",
            "service": settings.service_name,
            "version": VERSION,
            "subjects": len(app.state.registry),
        }

    app.include_router(router, prefix="/api/v1")
    return app


app: FastAPI = create_app()
