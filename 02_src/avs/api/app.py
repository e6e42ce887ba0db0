"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import Application
from ..errors import PipelineError
from ..logging_config import get_logger
from .routes import agents, attestation, observability, tasks

logger = get_logger(__name__)

# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Without an explicit `application` the global one is used and started by
    the lifespan; an explicitly passed application is managed by the caller.
    """
    managed = application is None
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if managed:
            await application.start()
        yield
        if managed:
            await application.stop()

    fastapi_app = FastAPI(
        title="AVS Validation Pipeline API",
        description="Task and agent validation pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Enable CORS
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @fastapi_app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "bad_request", "message": str(exc), "detail": {}},
        )

    # Include routers
    fastapi_app.include_router(agents.create_agents_router(application))
    fastapi_app.include_router(tasks.create_tasks_router(application))
    fastapi_app.include_router(attestation.create_attestation_router(application))
    fastapi_app.include_router(observability.create_observability_router(application))

    return fastapi_app
