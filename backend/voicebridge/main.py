"""
VoiceBridge - Main FastAPI Application
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from google import genai

from .config import Settings, settings as default_settings
from .api import config_router, realtime_router, sessions_router, tools_router
from .core.latency import LatencyTracker
from .core.logging_config import setup_logging
from .core.session_store import SessionStore
from .live import LiveModelConnector
from .middleware import RequestLoggingMiddleware
from .realtime import RealtimeGateway
from .tools import ToolCallCoordinator, ToolRegistry, register_default_tools

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, live_client: Any = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use instead of the environment-derived ones
        live_client: Stand-in for ``google.genai.Client`` (tests); when None a
            real client is built from GEMINI_API_KEY, if one is configured
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        # Startup
        setup_logging(settings)

        latency = LatencyTracker(enabled=settings.latency_log)
        store = SessionStore(
            timeout_seconds=settings.session_timeout_seconds,
            memory_max_length=settings.memory_max_length,
            # connector is bound below, before any session can expire
            on_expire=lambda session: connector.release_expired(session),
        )
        registry = register_default_tools(ToolRegistry(), settings, latency=latency)
        coordinator = ToolCallCoordinator(registry, ttl_seconds=settings.tool_dedupe_ttl_seconds)

        client = live_client
        if client is None and settings.gemini_api_key:
            client = genai.Client(api_key=settings.gemini_api_key)
        if client is None:
            logger.warning("GEMINI_API_KEY is not set; live connections will be refused")

        connector = LiveModelConnector(
            client=client,
            store=store,
            coordinator=coordinator,
            registry=registry,
            model=settings.gemini_model,
            rag_base_url=settings.rag_base_url,
            latency=latency,
            log_tools=settings.log_tools,
        )
        gateway = RealtimeGateway(store, connector, latency=latency)

        app.state.settings = settings
        app.state.latency = latency
        app.state.session_store = store
        app.state.tool_registry = registry
        app.state.coordinator = coordinator
        app.state.connector = connector
        app.state.gateway = gateway

        sweeper = asyncio.create_task(store.run_sweeper(settings.session_cleanup_interval_seconds))

        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Live model: {settings.gemini_model}")
        logger.info(f"Tools: {', '.join(t.name for t in registry.get_all())}")
        logger.info(f"Log level: {settings.log_level.upper()}")
        logger.info(f"Debug mode: {settings.debug}")
        yield
        # Shutdown
        logger.info(f"Shutting down {settings.app_name}")
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
        for session in store.all():
            try:
                await connector.disconnect(session.id)
            except Exception as e:
                logger.error(f"Failed to close session {session.id}: {e}", exc_info=True)
        store.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Realtime voice proxy between browser widgets and the Gemini Live API",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware (after CORS)
    if settings.log_api_requests:
        app.add_middleware(RequestLoggingMiddleware)

    # Include routers
    app.include_router(sessions_router)
    app.include_router(tools_router)
    app.include_router(config_router)
    app.include_router(realtime_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "websocket": settings.ws_path,
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        store = getattr(app.state, "session_store", None)
        gateway = getattr(app.state, "gateway", None)
        return {
            "status": "healthy",
            "version": settings.app_version,
            "sessions": len(store) if store is not None else 0,
            "clients": gateway.client_count if gateway is not None else 0,
            "liveConfigured": live_client is not None or bool(settings.gemini_api_key),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "voicebridge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.debug
    )
