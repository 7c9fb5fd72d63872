"""
One fetch-and-evaluate cycle against the activity page.

A check never raises: fetch problems come back as a CheckResult with
`error` set, and alert side effects run in the background.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Protocol, Set

from .errors import FetchError
from .models import CheckResult, PageData, PollingState
from .parsing import is_available
from .telegram_bot import BotChannelManager, format_alert_message

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("rec_watch.alerts")

ALERT_TITLE = "🏀 Rec Center Alert"


class Fetcher(Protocol):
    async def fetch(self, url: str, *, timeout: float, settle: float) -> PageData: ...


class Notifier(Protocol):
    async def notify_local(self, title: str, message: str) -> None: ...

    async def open_in_browser(self, url: str) -> None: ...


def desktop_message(result: CheckResult) -> str:
    if result.openings_count:
        return f"{result.openings_count} spots available!"
    return "Spots available!"


class AvailabilityChecker:
    def __init__(
        self,
        fetcher: Fetcher,
        notifier: Notifier,
        state: PollingState,
        bot: Optional[BotChannelManager] = None,
        *,
        nav_timeout: float = 60.0,
        settle_delay: float = 3.0,
        auto_open: bool = True,
        desktop_notify: bool = True,
    ) -> None:
        self._fetcher = fetcher
        self._notifier = notifier
        self._state = state
        self._bot = bot
        self.nav_timeout = nav_timeout
        self.settle_delay = settle_delay
        self.auto_open = auto_open
        self.desktop_notify = desktop_notify
        self._alerts: Set[asyncio.Task] = set()

    async def check(self, url: str) -> CheckResult:
        """Fetch `url`, decide availability, record it and fire alerts."""
        logger.info("Checking availability of %s", url)
        try:
            page = await self._fetcher.fetch(
                url, timeout=self.nav_timeout, settle=self.settle_delay
            )
        except FetchError as exc:
            logger.error("Error checking availability: %s", exc)
            result = CheckResult.failed(url, str(exc))
            self._state.record(result)
            return result
        except Exception as exc:
            logger.error("Unexpected error checking %s: %s", url, exc, exc_info=True)
            result = CheckResult.failed(url, f"Unexpected error: {exc}")
            self._state.record(result)
            return result

        result = CheckResult(
            url=url,
            available=is_available(page),
            openings_count=page.openings_count,
            is_full=page.is_full,
            activity_title=page.activity_title,
        )
        self._state.record(result)
        logger.info(
            "Result: available=%s openings=%s waitlist=%s title=%r",
            result.available,
            result.openings_count,
            page.has_waitlist,
            result.activity_title,
        )

        if result.available:
            self._send_alerts(result)
        return result

    def _send_alerts(self, result: CheckResult) -> None:
        if self.desktop_notify:
            self._fire(
                "desktop notification",
                self._notifier.notify_local(ALERT_TITLE, desktop_message(result)),
            )
        if self.auto_open:
            self._fire("browser auto-open", self._notifier.open_in_browser(result.url))
        if self._bot is not None and self._bot.status().connected:
            self._fire("telegram alert", self._bot.notify(format_alert_message(result)))

    def _fire(self, label: str, coro: Awaitable) -> None:
        task = asyncio.ensure_future(coro)
        self._alerts.add(task)

        def _done(t: asyncio.Task) -> None:
            self._alerts.discard(t)
            if t.cancelled():
                alert_logger.warning("%s cancelled", label)
            elif t.exception() is not None:
                alert_logger.error("%s failed: %s", label, t.exception())
            elif t.result() is False:
                alert_logger.warning("%s not delivered", label)
            else:
                alert_logger.info("%s delivered", label)

        task.add_done_callback(_done)

    async def wait_for_alerts(self) -> None:
        """Wait until every alert fired so far has finished."""
        if self._alerts:
            await asyncio.gather(*list(self._alerts), return_exceptions=True)
