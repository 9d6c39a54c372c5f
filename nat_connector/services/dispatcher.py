"""
Request dispatcher.

Decodes each inbound message into a NatEvent, validates it, runs the
convergence workflow on a worker thread and publishes exactly one reply:

  decode failure      -> <subject>.error with the raw payload
  validation/workflow -> <subject>.error with the envelope and error_message
  success             -> <subject>.done with the envelope

Every admitted request gets its own worker thread, so a long deletion poll
never delays another request. Past MAX_IN_FLIGHT requests are answered
`.error` straight away instead of queueing.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from nat_connector.core import store
from nat_connector.core.config import Settings, get_settings
from nat_connector.core.errors import (
    CapacityExceededError,
    EventDecodeError,
    EventValidationError,
    NatConnectorError,
)
from nat_connector.core.logging import ContextLogger
from nat_connector.models.event import NatEvent, action_from_subject
from nat_connector.services.bus import NatsBus
from nat_connector.services.cloud.ec2_client import Ec2NatClient
from nat_connector.services.convergence import ConvergenceEngine
from nat_connector.utils.aws_client_factory import get_ec2_client

logger = logging.getLogger(__name__)

EngineFactory = Callable[[NatEvent], ConvergenceEngine]


def default_engine_factory(event: NatEvent) -> ConvergenceEngine:
    """Build an engine bound to the region and credentials of one request."""
    client = get_ec2_client(event.datacenter_region, event.datacenter_secret, event.datacenter_token)
    return ConvergenceEngine(Ec2NatClient(client))


class Dispatcher:
    def __init__(
        self,
        bus: NatsBus,
        engine_factory: EngineFactory = default_engine_factory,
        settings: Optional[Settings] = None,
    ) -> None:
        self._bus = bus
        self._engine_factory = engine_factory
        self._settings = settings or get_settings()
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.max_in_flight, thread_name_prefix="nat-worker",
        )
        self._stop_event = threading.Event()
        self._tasks: set[asyncio.Task] = set()
        self._active = 0
        self.fatal = asyncio.Event()
        self.fatal_error: Optional[BaseException] = None

    async def start(self, subjects: list[str], queue: str = "") -> None:
        for subject in subjects:
            await self._bus.subscribe(subject, self.on_message, queue=queue)

    async def on_message(self, subject: str, body: bytes) -> None:
        """Bus callback: schedule the request and return immediately."""
        task = asyncio.create_task(self.handle(subject, body))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    async def handle(self, subject: str, body: bytes) -> None:
        loop = asyncio.get_running_loop()
        store.request_started()
        succeeded = False
        try:
            if self._active < self._settings.max_in_flight:
                self._active += 1
                try:
                    reply_subject, payload = await loop.run_in_executor(
                        self._executor, self.process, subject, body, self._stop_event,
                    )
                finally:
                    self._active -= 1
            else:
                reply_subject, payload = self.reject(subject, body)

            try:
                await self._bus.publish(reply_subject, payload)
            except Exception:
                logger.exception("Could not publish reply to %s", reply_subject)
                return
            succeeded = reply_subject.endswith(".done")
        finally:
            store.request_finished(succeeded)

    def reject(self, subject: str, body: bytes) -> tuple[str, bytes]:
        """Answer a request without running it because the worker is full."""
        error = CapacityExceededError(
            f"worker at capacity ({self._settings.max_in_flight} requests in flight)"
        )
        log = ContextLogger(__name__, subject=subject)
        try:
            event = NatEvent.decode(body)
        except EventDecodeError:
            log.warning("Rejected undecodable message: %s", error)
            return f"{subject}.error", body

        log.bind(request_id=event.uuid, batch_id=event.batch_id).warning("Rejected request: %s", error)
        return self._error_reply(subject, event, error)

    def process(
        self, subject: str, body: bytes, stop_event: Optional[threading.Event] = None,
    ) -> tuple[str, bytes]:
        """Run one request to completion and return (reply_subject, payload)."""
        log = ContextLogger(__name__, subject=subject)
        action = action_from_subject(subject)

        try:
            event = NatEvent.decode(body)
        except EventDecodeError as e:
            log.error("Could not decode message: %s", e)
            return f"{subject}.error", body

        log = log.bind(request_id=event.uuid, batch_id=event.batch_id)
        try:
            if action not in ConvergenceEngine.WORKFLOW_ACTIONS:
                ConvergenceEngine.get(action)
            event.validate_for(action)
            log.info("Processing %s for %s", action, event.vpc_id)
            self._engine_factory(event).run(action, event, stop_event)
        except EventValidationError as e:
            log.warning("Rejected invalid event: %s", e)
            return self._error_reply(subject, event, e)
        except NatConnectorError as e:
            log.error("%s failed: %s", action, e)
            return self._error_reply(subject, event, e)
        except Exception as e:
            log.exception("Unexpected failure during %s", action)
            return self._error_reply(subject, event, e)

        try:
            payload = event.encode()
        except (TypeError, ValueError) as e:
            log.error("Could not encode reply: %s", e)
            return self._error_reply(subject, event, e)

        log.info("%s complete", action)
        return f"{subject}.done", payload

    def _error_reply(self, subject: str, event: NatEvent, error: Exception) -> tuple[str, bytes]:
        event.error_message = str(error)
        try:
            payload = event.encode()
        except (TypeError, ValueError):
            logger.exception("Could not encode error reply for %s", subject)
            raise
        return f"{subject}.error", payload

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical("Request handler crashed", exc_info=exc)
            self.fatal_error = exc
            self.fatal.set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel pending polls, wait for in-flight requests, stop the workers."""
        self._stop_event.set()
        if self._tasks:
            logger.info("Waiting for %d in-flight request(s)", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._executor.shutdown(wait=True)
