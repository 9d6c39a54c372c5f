"""
NATS connection owned by the process entry point.

Wraps a nats-py client with an explicit connect / subscribe / publish /
disconnect lifecycle, so nothing in the worker holds a global connection.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import nats
from nats.aio.client import Client as NATS
from nats.aio.msg import Msg

from nat_connector.core import store

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Awaitable[None]]


class NatsBus:
    def __init__(self, uri: str, name: str = "nat-connector") -> None:
        self._uri = uri
        self._name = name
        self._nc: Optional[NATS] = None

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        logger.info("Connecting to NATS at %s", self._uri)
        self._nc = await nats.connect(
            servers=[self._uri],
            name=self._name,
            error_cb=self._on_error,
            disconnected_cb=self._on_disconnected,
            reconnected_cb=self._on_reconnected,
            closed_cb=self._on_closed,
            max_reconnect_attempts=-1,
        )
        store.set_bus_connected(True)
        logger.info("Connected to NATS")

    async def subscribe(self, subject: str, handler: MessageHandler, queue: str = "") -> None:
        async def _callback(msg: Msg) -> None:
            await handler(msg.subject, msg.data)

        await self._client().subscribe(subject, queue=queue, cb=_callback)
        logger.info("Listening for %s", subject)

    async def publish(self, subject: str, data: bytes) -> None:
        await self._client().publish(subject, data)

    async def disconnect(self) -> None:
        if self._nc is None:
            return
        if not self._nc.is_closed:
            await self._nc.drain()
        store.set_bus_connected(False)
        self._nc = None
        logger.info("Disconnected from NATS")

    def _client(self) -> NATS:
        if self._nc is None:
            raise RuntimeError("NATS bus is not connected")
        return self._nc

    # ── Connection callbacks ──────────────────────────────────────────────────

    async def _on_error(self, exc: Exception) -> None:
        logger.error("NATS error: %s", exc)

    async def _on_disconnected(self) -> None:
        store.set_bus_connected(False)
        logger.warning("Disconnected from NATS, reconnecting")

    async def _on_reconnected(self) -> None:
        store.set_bus_connected(True)
        logger.info("Reconnected to NATS")

    async def _on_closed(self) -> None:
        store.set_bus_connected(False)

    def __repr__(self) -> str:
        return f"NatsBus(uri={self._uri!r}, connected={self.is_connected})"
