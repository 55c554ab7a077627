"""Application entry point for the inbox ingestion service.

Runs the FastAPI server (sync trigger, status, conversation, work queue,
event stream and Unipile webhook routes) and, when enabled, the background
sync scheduler in a single long-running process.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting through the structlog bridge when a DSN is set
- **Prometheus** HTTP and sync metrics on ``/metrics``
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from crm_inbox.api import router as api_router
from crm_inbox.api import store_timeout_handler
from crm_inbox.auth import TokenRefresher
from crm_inbox.config import Settings, get_settings, validate_credentials
from crm_inbox.domain.errors import StoreTimeoutError
from crm_inbox.events import EventBroadcaster
from crm_inbox.health import register_health_routes
from crm_inbox.observability.metrics import setup_metrics
from crm_inbox.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from crm_inbox.observability.sentry import get_sentry_processor, init_sentry
from crm_inbox.providers import ProviderConfig, create_provider_client
from crm_inbox.store import (
    AccountStore,
    ConversationStore,
    MessageStore,
    SyncStatusStore,
    UserStateStore,
    init_inbox_db,
)
from crm_inbox.sync.bodies import LazyBodyFetcher
from crm_inbox.sync.orchestrator import SyncOrchestrator
from crm_inbox.sync.tasks import SyncScheduler, SyncTaskQueue
from crm_inbox.sync.threads import ThreadResolver
from crm_inbox.sync.writer import IdempotentWriter
from crm_inbox.webhooks import router as webhook_router

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry if ``True``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the inbox database, creates the stores, the provider client
    factory, the token refresher, the event broadcaster, the ingestion
    pipeline (resolver, writer, orchestrator), the lazy body fetcher and the
    sync task queue.  The scheduler is created only when background sync is
    enabled.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    db_path = settings.db_path
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_inbox_db(db_path)
    services["inbox_conn"] = conn

    accounts = AccountStore(conn)
    conversations = ConversationStore(conn)
    messages = MessageStore(conn)
    sync_status = SyncStatusStore(conn)
    services.update(
        accounts=accounts,
        conversations=conversations,
        messages=messages,
        sync_status=sync_status,
        user_state=UserStateStore(conn),
    )

    provider_config = ProviderConfig.from_settings(settings)
    client_factory = partial(create_provider_client, config=provider_config)
    services["provider_config"] = provider_config
    services["client_factory"] = client_factory

    broadcaster = EventBroadcaster()
    writer = IdempotentWriter(messages, ThreadResolver(conversations))
    services["broadcaster"] = broadcaster
    services["writer"] = writer

    services["body_fetcher"] = LazyBodyFetcher(messages, conversations, accounts, client_factory)

    orchestrator = SyncOrchestrator(
        accounts=accounts,
        sync_status=sync_status,
        writer=writer,
        token_refresher=TokenRefresher(provider_config),
        client_factory=client_factory,
        broadcaster=broadcaster,
        page_ceiling=settings.sync_page_ceiling,
        email_initial_days=settings.email_initial_sync_days,
        linkedin_initial_days=settings.linkedin_initial_sync_days,
    )
    task_queue = SyncTaskQueue(orchestrator, sync_status)
    services["orchestrator"] = orchestrator
    services["task_queue"] = task_queue

    if settings.background_sync_enabled:
        services["scheduler"] = SyncScheduler(
            task_queue, accounts, settings.background_sync_interval_seconds
        )
        logger.info(
            "background_sync_enabled",
            interval_seconds=settings.background_sync_interval_seconds,
        )

    logger.info("services_initialized", db_path=str(db_path))
    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On startup: starts the background sync scheduler if configured.
    On shutdown: stops the scheduler, cancels running syncs and closes the
    inbox database connection.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    services = app.state.services
    scheduler: SyncScheduler | None = services.get("scheduler")
    scheduler_task: asyncio.Task[None] | None = None
    if scheduler is not None:
        scheduler_task = asyncio.create_task(scheduler.run_forever(), name="sync-scheduler")
    logger.info("application_starting")
    yield
    if scheduler_task is not None:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
    task_queue: SyncTaskQueue | None = services.get("task_queue")
    if task_queue is not None:
        await task_queue.shutdown()
    conn = services.get("inbox_conn")
    if conn is not None:
        conn.close()
        logger.info("inbox_db_closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, routers, health and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="CRM Inbox", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(api_router)
    fastapi_app.include_router(webhook_router)
    fastapi_app.add_exception_handler(StoreTimeoutError, store_timeout_handler)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: configure logging, build services and serve HTTP."""
    settings = get_settings()
    sentry_enabled = init_sentry(settings.sentry_dsn, production=settings.production)
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("application_starting", production=settings.production)

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
