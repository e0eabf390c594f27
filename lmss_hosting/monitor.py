"""
LmssMonitor - long-running background supervision of an LM Studio server.

State machine:
    IDLE → AWAITING_READY → RUNNING → STOPPED

AWAITING_READY polls readiness until the server is up with a model loaded.
RUNNING then polls on a schedule and calls the per-iteration hook while
the server is ready. Errors in RUNNING are treated as transient; only
cancellation (stop()) moves the monitor to STOPPED.

Usage:
    async def on_iteration(service: LmssService) -> None:
        ...

    monitor = LmssMonitor(service, on_iteration=on_iteration)
    monitor.start()
    ...
    await monitor.stop()
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from lmss_hosting.adapters.schema import ServerStatus
from lmss_hosting.config import MonitorIntervals
from lmss_hosting.conversation import ConversationManager
from lmss_hosting.service import LmssService

logger = logging.getLogger(__name__)

IterationHook = Callable[[LmssService], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class MonitorState(str, Enum):
    IDLE = "idle"
    AWAITING_READY = "awaiting_ready"
    RUNNING = "running"
    STOPPED = "stopped"


async def log_server_status(service: LmssService) -> None:
    """Default iteration hook: fetch a status snapshot and log it."""
    status = await service.get_server_status()
    logger.debug(
        f"Server status - Healthy: {status.is_healthy}, "
        f"Models: {len(status.available_models)}, Current: {status.current_model}"
    )


class LmssMonitor:
    """
    Background monitor for an LmssService.

    The hook is injected rather than overridden; it receives the service
    and runs once per ready iteration. `sleep` is injectable so the delay
    schedule can be observed without waiting.
    """

    def __init__(
        self,
        service: LmssService,
        on_iteration: Optional[IterationHook] = None,
        intervals: Optional[MonitorIntervals] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.service = service
        self.on_iteration = on_iteration or log_server_status
        self.intervals = intervals or MonitorIntervals()
        self._sleep = sleep
        self._state = MonitorState.IDLE
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def current_model(self) -> Optional[str]:
        return self.service.current_model

    # ─────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        """Spawn run() as a task on the running event loop."""
        if self._task is not None and not self._task.done():
            raise RuntimeError("Monitor is already running")
        self._task = asyncio.create_task(self.run(), name="lmss-monitor")
        return self._task

    async def stop(self) -> None:
        """Cancel the monitor task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._state = MonitorState.STOPPED

    async def close(self) -> None:
        """Stop the monitor and dispose of the underlying client."""
        await self.stop()
        await self.service.close()

    # ─────────────────────────────────────────────────────────────────
    # LOOPS
    # ─────────────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Wait for readiness, then monitor until cancelled."""
        logger.info("LM Studio monitor starting...")
        try:
            await self.wait_for_service_ready()
            logger.info("LM Studio monitor is ready and running")
            self._state = MonitorState.RUNNING
            await self._run_loop()
        except asyncio.CancelledError:
            pass
        finally:
            self._state = MonitorState.STOPPED
            logger.info("LM Studio monitor stopping...")

    async def wait_for_service_ready(self) -> None:
        """Poll readiness until the server is up with models loaded."""
        self._state = MonitorState.AWAITING_READY
        logger.info("Waiting for LM Studio service to become ready...")

        last_status: Optional[str] = None
        while True:
            try:
                readiness = await self.service.check_readiness()
            except Exception:
                logger.warning(
                    f"Error checking service readiness, retrying in "
                    f"{self.intervals.ready_wait_error:g} seconds...",
                    exc_info=True,
                )
                await self._sleep(self.intervals.ready_wait_error)
                continue

            # Log status changes only
            if readiness.message != last_status:
                logger.info(readiness.status_description)
                if readiness.message:
                    logger.debug(readiness.message)
                last_status = readiness.message

            if readiness.is_ready:
                logger.info("LM Studio service is ready with models loaded")
                return

            if readiness.server_healthy:
                delay = self.intervals.ready_wait_no_models
            else:
                delay = self.intervals.ready_wait_server_down
            await self._sleep(delay)

    async def _run_loop(self) -> None:
        while True:
            try:
                readiness = await self.service.check_readiness()
                if not readiness.is_ready:
                    if not readiness.server_healthy:
                        logger.warning("LM Studio server is not accessible, waiting...")
                        await self._sleep(self.intervals.server_down)
                    else:
                        logger.info("LM Studio is running but no models loaded, continuing to monitor...")
                        await self._sleep(self.intervals.no_models)
                    continue

                await self.on_iteration(self.service)
                await self._sleep(self.intervals.iteration)
            except Exception:
                logger.error("Error in background monitor iteration", exc_info=True)
                await self._sleep(self.intervals.error)

    # ─────────────────────────────────────────────────────────────────
    # PASSTHROUGHS
    # ─────────────────────────────────────────────────────────────────

    async def process_message(self, message: str, system_prompt: Optional[str] = None) -> str:
        return await self.service.send_message(message, system_prompt)

    async def process_conversation(
        self, conversation: ConversationManager, user_message: str
    ) -> str:
        return await self.service.continue_conversation(conversation, user_message)

    def start_conversation(self, system_prompt: Optional[str] = None) -> ConversationManager:
        return self.service.start_conversation(system_prompt)

    async def get_server_status(self) -> ServerStatus:
        return await self.service.get_server_status()

    async def is_ready(self) -> bool:
        return await self.service.is_ready()
