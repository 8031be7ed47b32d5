"""FastAPI app entrypoint."""

import logging
from concurrent.futures import Executor
from contextlib import asynccontextmanager

from fastapi import FastAPI

from alertntfy.adapters.interfaces import NotificationRelay
from alertntfy.adapters.ntfy import NtfyClient
from alertntfy.api.routes import router
from alertntfy.config import AppConfig, load_config
from alertntfy.middleware import RequestIdMiddleware
from alertntfy.services.forwarding import AlertForwarder
from alertntfy.services.lifecycle import LifecycleDispatcher, Scheduler, timer_scheduler
from alertntfy.telemetry.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    relay: NotificationRelay | None = None,
    scheduler: Scheduler = timer_scheduler,
    executor: Executor | None = None,
) -> FastAPI:
    relay = relay or NtfyClient(config.ntfy)
    dispatcher = LifecycleDispatcher(config.ntfy, relay, scheduler=scheduler)
    forwarder = AlertForwarder(dispatcher, executor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Pending delayed clears are abandoned on shutdown.
        forwarder.shutdown()
        relay.close()

    app = FastAPI(title="alertmanager-ntfy", lifespan=lifespan)
    app.state.config = config
    app.state.forwarder = forwarder
    app.add_middleware(RequestIdMiddleware)
    app.include_router(router)

    @app.get("/health")
    def health() -> dict[str, str]:
        logger.debug("Handling healthcheck")
        return {"status": "OK"}

    if config.http.auth is None or not config.http.auth.valid:
        logger.warning("Basic auth is disabled")
    return app


def get_app() -> FastAPI:
    """App factory for `uvicorn --factory alertntfy.main:get_app`."""

    config = load_config()
    setup_logging(config.log.level)
    return create_app(config)
