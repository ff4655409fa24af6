"""
Main FastAPI application for the collector.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from shared.codec import key_hint
from shared.constants import API_PREFIX, CLI_VERSION, INGEST_PATH
from shared.logging_utils import setup_logging
from collector.src.alerts import AlertEvaluator
from collector.src.api import router
from collector.src.config import CollectorConfig, load_config
from collector.src.database import Database
from collector.src.errors import StorageError
from collector.src.ingestion import ConnectionRegistry, IngestionHandler
from collector.src.notifier import Notifier, WebhookConfigStore
from collector.src.overrides import HostnameOverrides
from collector.src.registry import AgentRegistry
from collector.src.scheduler import CollectorScheduler, RetentionSweep
from collector.src.store import TimeSeriesStore

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, config: CollectorConfig):
    """Open storage and wire the collector components onto app.state."""
    database = Database(config.database.path)

    overrides = HostnameOverrides(config.files.hostname_file)
    overrides.ensure_exists()
    webhooks = WebhookConfigStore(config.files.webhook_file)
    webhooks.ensure_exists()

    store = TimeSeriesStore(database)
    registry = AgentRegistry(
        database,
        store,
        overrides,
        online_threshold=config.alerts.online_threshold
    )
    notifier = Notifier(webhooks)
    evaluator = AlertEvaluator(
        registry,
        store,
        notifier,
        offline_threshold=config.alerts.offline_threshold,
        cpu_threshold=config.alerts.cpu_threshold,
        overload_duration=config.alerts.overload_duration
    )
    ingestion = IngestionHandler(
        registry,
        store,
        ConnectionRegistry(),
        encryption_key=config.security.encryption_key,
        accept_plaintext=config.security.accept_plaintext,
        read_timeout=config.server.read_timeout
    )

    app.state.database = database
    app.state.api_key = config.security.api_key
    app.state.store = store
    app.state.registry = registry
    app.state.webhooks = webhooks
    app.state.notifier = notifier
    app.state.evaluator = evaluator
    app.state.ingestion = ingestion
    app.state.scheduler = CollectorScheduler(
        RetentionSweep(store, days=config.retention.days),
        evaluator,
        retention_interval_hours=config.retention.interval_hours,
        alert_interval_seconds=config.alerts.interval
    )


def create_app(config: CollectorConfig = None, start_scheduler: bool = True) -> FastAPI:
    """
    Build the collector application.

    Args:
        config: Collector configuration, loaded from file/env if omitted
        start_scheduler: Run the retention and alert sweeps in the background
    """
    if config is None:
        config = load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        logger.info("Starting Fleet Monitor Collector")
        build_services(app, config)
        logger.info(f"Database initialized at {config.database.path}")
        logger.info(
            f"Frame decryption key {key_hint(config.security.encryption_key)}, "
            f"plaintext frames {'accepted' if config.security.accept_plaintext else 'rejected'}"
        )
        if start_scheduler:
            app.state.scheduler.start()

        yield

        # Shutdown
        logger.info("Shutting down collector")
        app.state.scheduler.shutdown()
        app.state.database.close()

    app = FastAPI(
        title="Fleet Monitor",
        description="Metrics ingestion and liveness monitoring for a fleet of hosts",
        version=CLI_VERSION,
        lifespan=lifespan
    )
    app.state.config = config

    # Include API routes
    app.include_router(router, prefix=API_PREFIX)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    @app.websocket(INGEST_PATH)
    async def ingest(websocket: WebSocket):
        """Persistent agent connection carrying metric frames."""
        await websocket.app.state.ingestion.serve(websocket)

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "service": "Fleet Monitor Collector",
            "version": CLI_VERSION,
            "status": "running",
            "api_docs": "/docs"
        }

    return app


def run():
    """Run the collector under uvicorn."""
    import uvicorn

    config = load_config()
    setup_logging(
        config.logging.level,
        config.logging.file,
        config.logging.max_size_mb,
        config.logging.backup_count
    )

    logger.info(f"Starting server on {config.server.host}:{config.server.port}")

    # uvicorn sends the control pings and closes connections whose pong is late
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        ws="websockets",
        ws_ping_interval=config.server.ping_interval,
        ws_ping_timeout=config.server.read_timeout,
        ws_max_size=config.server.max_frame_size,
        reload=False,
        log_level=config.logging.level.lower()
    )


if __name__ == "__main__":
    run()
