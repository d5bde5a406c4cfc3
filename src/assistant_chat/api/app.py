"""
FastAPI Application Module

Web chat backend that relays user messages to a hosted assistant and streams
the answer back over a WebSocket hub.

Key Features:
- Realtime hub at /chatHub for sending messages and managing conversations
- File upload passthrough at /api/files/upload
- Structured logging, Prometheus metrics and OpenTelemetry tracing

Services are built once in the lifespan from environment settings, unless
they are injected into create_app (tests do that with fakes).
"""

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from ..config import Settings
from ..logging_config import configure_logging
from ..repositories.mongo import MongoRepository
from ..services.locks import ConversationLocks
from ..services.metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..services.openai_backend import OpenAIAssistantBackend
from ..services.orchestrator import RunOrchestrator
from ..services.tools import default_registry
from . import files, gateway
from .dependencies import Services

logger = get_logger()


def build_services(settings: Settings) -> Services:
    """Creates the store, the backend client and the orchestrator"""
    repository = MongoRepository.from_url(settings.mongodb_url, settings.mongodb_database)
    backend = OpenAIAssistantBackend.from_settings(settings)
    orchestrator = RunOrchestrator(
        repository=repository,
        backend=backend,
        tools=default_registry(),
        assistant_id=settings.assistant_id,
        summary_model=settings.summary_model,
        locks=ConversationLocks(max_concurrent=settings.max_concurrent_turns),
        max_tool_rounds=settings.max_tool_rounds,
    )
    return Services(repository=repository, backend=backend, orchestrator=orchestrator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown and resource management"""
    owned = getattr(app.state, "services", None) is None
    if owned:
        settings = Settings.from_env()
        configure_logging(settings.log_level, settings.log_json)
        app.state.services = build_services(settings)

    services: Services = app.state.services
    await services.repository.ensure_created()
    logger.info("application_startup_complete")

    yield

    if owned:
        await services.backend.close()
        await services.repository.close()
        app.state.services = None
    logger.info("application_shutdown_complete")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Builds the application, optionally around pre-built services"""
    app = FastAPI(
        title="Assistant Chat",
        description="Streams hosted assistant runs to browser clients",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.services = services

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests and counts failures"""
        path = request.url.path
        REQUESTS.labels(path=path).inc()
        logger.info("request_started", path=path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.labels(path=path).inc()
            logger.error("request_failed", path=path, error=str(e))
            raise
        if response.status_code >= 400:
            ERRORS.labels(path=path).inc()
        return response

    app.include_router(files.router)
    app.include_router(gateway.router)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        """Liveness probe"""
        return {"status": "healthy", "service": "assistant-chat"}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
