"""
Application state: owns the config, polling state and the components that
act on them. One Monitor per process (or per test).
"""

import logging
from typing import Any, Dict, Optional

from .checker import AvailabilityChecker, Fetcher, Notifier
from .config import Settings
from .hub import BroadcastHub
from .models import PollConfig, PollingState
from .notifier import LocalNotifier
from .poller import PollingController
from .scraper import PageFetcher
from .telegram_bot import BotChannelManager, SessionFactory, TelegramSession

logger = logging.getLogger(__name__)


class Monitor:
    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[Fetcher] = None,
        notifier: Optional[Notifier] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.settings = settings
        self.config = PollConfig(settings.target_url, settings.poll_interval)
        self.state = PollingState()
        self.fetcher = fetcher or PageFetcher(
            browser_port=settings.browser_port,
            user_agent=settings.user_agent,
            idle_timeout=settings.browser_idle_timeout,
        )
        self.hub = BroadcastHub(self.snapshot)
        self.bot = BotChannelManager(
            self.hub.broadcast, session_factory=session_factory or TelegramSession
        )
        self.checker = AvailabilityChecker(
            self.fetcher,
            notifier or LocalNotifier(),
            self.state,
            self.bot,
            nav_timeout=settings.nav_timeout,
            settle_delay=settings.settle_delay,
            auto_open=settings.auto_open,
            desktop_notify=settings.desktop_notify,
        )
        self.poller = PollingController(
            self.config, self.state, self.checker, self.hub.broadcast
        )

    def snapshot(self) -> Dict[str, Any]:
        """Full state pushed to a client as soon as it connects."""
        return {
            "type": "status",
            **self.poller.status(),
            "telegram": self.bot.status().to_dict(),
        }

    async def startup(self, start_polling: bool = False) -> None:
        if self.settings.bot_token:
            if await self.bot.start(self.settings.bot_token):
                await self.bot.broadcast_status()
        if start_polling:
            await self.poller.start()

    async def shutdown(self) -> None:
        logger.info("Shutting down monitor")
        await self.poller.shutdown()
        await self.bot.stop()
        await self.checker.wait_for_alerts()
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            close()
