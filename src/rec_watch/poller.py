"""
Polling loop: start/stop state machine around the availability checker.

The loop reschedules itself after each check completes, so a slow page only
delays the next tick; two checks of the same loop never run at once.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .checker import AvailabilityChecker
from .models import PollConfig, PollingState

logger = logging.getLogger(__name__)

Broadcast = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class _Schedule:
    """Handle for one running loop."""

    stop_event: asyncio.Event
    task: Optional[asyncio.Task] = None


class PollingController:
    def __init__(
        self,
        config: PollConfig,
        state: PollingState,
        checker: AvailabilityChecker,
        broadcast: Broadcast,
    ) -> None:
        self._config = config
        self._state = state
        self._checker = checker
        self._broadcast = broadcast
        self._schedule: Optional[_Schedule] = None
        self._loops: Set[asyncio.Task] = set()

    @property
    def is_polling(self) -> bool:
        return self._state.is_polling

    def status(self) -> Dict[str, Any]:
        last = self._state.last_result
        return {
            "isPolling": self._state.is_polling,
            "interval": self._config.interval_seconds,
            "url": self._config.target_url,
            "lastCheck": last.to_dict() if last else None,
            "checkCount": self._state.check_count,
        }

    def update_config(
        self, url: Optional[str] = None, interval_seconds: Optional[int] = None
    ) -> None:
        """Change URL/interval. A running loop picks them up on its next tick."""
        self._config.update(url=url, interval_seconds=interval_seconds)
        logger.info(
            "Config updated: url=%s interval=%ss",
            self._config.target_url,
            self._config.interval_seconds,
        )

    async def start(self) -> bool:
        """Begin polling. Returns False if a loop is already running."""
        if self._state.is_polling:
            logger.debug("start() ignored: already polling")
            return False

        self._state.is_polling = True
        self._state.check_count = 0
        schedule = _Schedule(stop_event=asyncio.Event())
        self._schedule = schedule
        logger.info(
            "Polling started: %s every %ss",
            self._config.target_url,
            self._config.interval_seconds,
        )

        await self._broadcast(
            {
                "type": "status",
                "isPolling": True,
                "interval": self._config.interval_seconds,
                "url": self._config.target_url,
            }
        )
        # stop() may have run while the status event was being sent.
        if not schedule.stop_event.is_set():
            schedule.task = asyncio.create_task(
                self._run(schedule.stop_event), name="availability-poll"
            )
            self._loops.add(schedule.task)
            schedule.task.add_done_callback(self._loops.discard)
        return True

    async def stop(self) -> bool:
        """
        Stop scheduling further checks. Returns False if not polling.

        A check already in flight is left to finish; its result is still
        recorded and broadcast before the loop exits.
        """
        if not self._state.is_polling:
            logger.debug("stop() ignored: not polling")
            return False

        self._state.is_polling = False
        if self._schedule is not None:
            self._schedule.stop_event.set()
            self._schedule = None
        logger.info("Polling stopped")

        await self._broadcast({"type": "status", "isPolling": False})
        return True

    async def shutdown(self) -> None:
        """
        Stop and cancel every loop outright, including loops that were
        already stopped but are still finishing an in-flight check.
        """
        await self.stop()
        loops = [task for task in self._loops if not task.done()]
        for task in loops:
            task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)
        self._loops.clear()

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self._tick()
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self._config.interval_seconds
                )
            except asyncio.TimeoutError:
                continue
        logger.debug("Polling loop exited")

    async def _tick(self) -> None:
        try:
            result = await self._checker.check(self._config.target_url)
        except Exception as exc:
            logger.error("Check cycle crashed: %s", exc, exc_info=True)
            return

        try:
            await self._broadcast(
                {"type": "result", **result.to_dict(), "checkCount": self._state.check_count}
            )
        except Exception as exc:
            logger.error("Failed to broadcast result: %s", exc, exc_info=True)
