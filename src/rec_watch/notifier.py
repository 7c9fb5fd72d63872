"""Local alert channels: desktop notification and opening the browser."""

import asyncio
import logging
import webbrowser

from plyer import notification

from .errors import NotificationDeliveryError

logger = logging.getLogger(__name__)

APP_NAME = "Rec Center Watch"
NOTIFICATION_TIMEOUT = 10


class LocalNotifier:
    """Desktop notification via plyer and URL launch via webbrowser."""

    async def notify_local(self, title: str, message: str) -> None:
        try:
            await asyncio.to_thread(
                notification.notify,
                title=title,
                message=message,
                app_name=APP_NAME,
                timeout=NOTIFICATION_TIMEOUT,
            )
        except Exception as exc:  # plyer backends raise platform-specific errors
            raise NotificationDeliveryError(f"Desktop notification failed: {exc}") from exc
        logger.debug("Desktop notification sent: %s", title)

    async def open_in_browser(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(webbrowser.open, url)
        except webbrowser.Error as exc:
            raise NotificationDeliveryError(f"Could not open {url}: {exc}") from exc
        if not opened:
            raise NotificationDeliveryError(f"No browser available to open {url}")
        logger.debug("Opened %s in the default browser", url)
