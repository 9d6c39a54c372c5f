"""
Process entry point: NATS worker plus a FastAPI health endpoint.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys

import uvicorn
from fastapi import FastAPI

from nat_connector import __version__
from nat_connector.api.routes import health
from nat_connector.core.config import get_settings
from nat_connector.core.logging import configure_logging
from nat_connector.services.bus import NatsBus
from nat_connector.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

app = FastAPI(
    title="NAT Connector",
    description="Provisions AWS NAT gateways, internet gateways and routes from NATS events",
    version=__version__,
    docs_url=None,
    redoc_url=None,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(health.router)


async def serve() -> int:
    configure_logging()
    settings = get_settings()
    logger.info("Starting NAT connector v%s (mock_aws=%s)", __version__, settings.mock_aws)

    bus = NatsBus(settings.nats_uri)
    await bus.connect()

    dispatcher = Dispatcher(bus, settings=settings)
    await dispatcher.start(settings.subjects_list, queue=settings.queue_group)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    waiters = {
        asyncio.create_task(stop.wait()),
        asyncio.create_task(dispatcher.fatal.wait()),
    }
    server = None
    server_task = None
    if settings.health_port:
        server = uvicorn.Server(
            uvicorn.Config(app, host="0.0.0.0", port=settings.health_port, log_config=None)
        )
        server_task = asyncio.create_task(server.serve())
        waiters.add(server_task)

    logger.info("Startup complete")
    _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

    logger.info("Shutting down")
    await dispatcher.shutdown()
    await bus.disconnect()

    if server is not None:
        server.should_exit = True
    for task in pending:
        if task is not server_task:
            task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    if dispatcher.fatal_error is not None:
        logger.critical("Exiting after unrecoverable error: %s", dispatcher.fatal_error)
        return 1
    logger.info("Shutdown complete")
    return 0


def run() -> None:
    sys.exit(asyncio.run(serve()))


if __name__ == "__main__":
    run()
