"""
Optional Telegram alert channel.

A chat registers itself by sending /start to the bot; alerts then go to the
most recently registered chat. The bot session is started and stopped at
runtime from the control API, and only one session exists at a time.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

from telegram import Update, constants
from telegram.error import Conflict, InvalidToken, TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes
from telegram.helpers import escape_markdown
from telegram.request import HTTPXRequest

from .errors import BotChannelError, BotSessionConflict, BotTokenInvalid
from .models import BotStatus, CheckResult

logger = logging.getLogger(__name__)

RegisterCallback = Callable[[str], Awaitable[None]]
ConflictCallback = Callable[[BotSessionConflict], None]
Broadcast = Callable[[Dict[str, Any]], Awaitable[Any]]


class BotSession(Protocol):
    async def open(self) -> None: ...

    async def send(self, chat_id: str, text: str) -> None: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[str, RegisterCallback, ConflictCallback], BotSession]


def format_alert_message(result: CheckResult) -> str:
    """Return the Markdown alert sent when spots open up."""
    title = escape_markdown(result.activity_title or "Activity", version=1)
    # Legacy Markdown has no escapes inside an entity, so the title stays plain.
    lines = ["🏀 *Spots available!*", title]
    if result.openings_count is not None:
        plural = "opening" if result.openings_count == 1 else "openings"
        lines.append(f"{result.openings_count} {plural} remaining")
    lines.append(f"[Enroll now]({result.url})")
    return "\n".join(lines)


class TelegramSession:
    """One python-telegram-bot Application polling for updates."""

    def __init__(
        self,
        token: str,
        on_register: RegisterCallback,
        on_conflict: ConflictCallback,
    ) -> None:
        self._token = token
        self._on_register = on_register
        self._on_conflict = on_conflict
        self.application: Optional[Application] = None
        self._requests: Tuple[HTTPXRequest, ...] = ()

    async def open(self) -> None:
        """
        Validate the token and start long polling.

        Raises:
            BotTokenInvalid: If Telegram rejects the token.
            BotChannelError: For any other failure while starting.
        """
        # Own both request clients so they can be closed if initialize() fails.
        self._requests = (HTTPXRequest(connection_pool_size=256), HTTPXRequest())
        try:
            self.application = (
                Application.builder()
                .token(self._token)
                .request(self._requests[0])
                .get_updates_request(self._requests[1])
                .build()
            )
        except InvalidToken as exc:
            raise BotTokenInvalid(str(exc)) from exc

        self.application.add_handlers(
            [
                CommandHandler("start", self._cmd_start),
                CommandHandler("help", self._cmd_help),
            ]
        )
        self.application.add_error_handler(self._on_error)

        try:
            await self.application.initialize()
        except InvalidToken as exc:
            await self._discard()
            raise BotTokenInvalid(str(exc)) from exc
        except TelegramError as exc:
            await self._discard()
            raise BotChannelError(f"Could not reach Telegram: {exc}") from exc

        try:
            await self.application.start()
            await self.application.updater.start_polling(
                drop_pending_updates=True, error_callback=self._polling_error
            )
        except TelegramError as exc:
            await self.close()
            raise BotChannelError(f"Could not start polling: {exc}") from exc

        logger.info("Telegram bot @%s is polling", self.application.bot.username)

    async def send(self, chat_id: str, text: str) -> None:
        if self.application is None:
            raise BotChannelError("Session is not open")
        try:
            await self.application.bot.send_message(
                chat_id,
                text,
                parse_mode=constants.ParseMode.MARKDOWN,
                disable_web_page_preview=True,
            )
        except TelegramError as exc:
            raise BotChannelError(f"Failed to send to chat {chat_id}: {exc}") from exc

    async def _discard(self) -> None:
        """Release a session whose initialize() failed."""
        app, self.application = self.application, None
        try:
            if app is not None:
                await app.shutdown()
            for request in self._requests:
                await request.shutdown()
        except Exception as exc:
            logger.debug("Error releasing Telegram clients: %s", exc)

    async def close(self) -> None:
        app = self.application
        if app is None:
            return
        self.application = None
        try:
            if app.updater and app.updater.running:
                await app.updater.stop()
            if app.running:
                await app.stop()
        finally:
            await app.shutdown()

    async def _cmd_start(self, update: Update, _: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start: bind this chat as the alert destination."""
        chat_id = str(update.effective_chat.id)
        await self._on_register(chat_id)
        await update.message.reply_text(
            "Connected! 🏀 I'll message you here as soon as spots open up."
        )

    async def _cmd_help(self, update: Update, _: ContextTypes.DEFAULT_TYPE) -> None:
        await update.message.reply_text(
            "Send /start to receive rec center availability alerts in this chat."
        )

    def _polling_error(self, exc: TelegramError) -> None:
        if isinstance(exc, Conflict):
            self._on_conflict(BotSessionConflict(str(exc)))
        else:
            logger.warning("Telegram polling error: %s", exc)

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        if isinstance(context.error, Conflict):
            self._on_conflict(BotSessionConflict(str(context.error)))
            return
        logger.error("Telegram handler error: %s", context.error, exc_info=context.error)


class BotChannelManager:
    """Owns the single bot session: Unconfigured -> Configured -> Connected."""

    def __init__(
        self,
        broadcast: Broadcast,
        session_factory: SessionFactory = TelegramSession,
    ) -> None:
        self._broadcast = broadcast
        self._session_factory = session_factory
        self._token: Optional[str] = None
        self._session: Optional[BotSession] = None
        self._chat_id: Optional[str] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._conflict_task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    def status(self) -> BotStatus:
        active = self._session is not None
        return BotStatus(
            active=active,
            configured=self._token is not None,
            connected=active and self._chat_id is not None,
        )

    async def start(self, token: str) -> bool:
        """
        Start a session for `token`, replacing any session for another token.

        Returns:
            True if a session for `token` is running afterwards, False if it
            could not be created (see `last_error`).
        """
        async with self._lock:
            if self._session is not None and token == self._token:
                logger.info("Telegram bot already running for this token")
                return True

            if self._session is not None:
                logger.info("Replacing Telegram bot session with a new token")
                await self._teardown()

            self._generation += 1
            generation = self._generation
            session = self._session_factory(
                token,
                functools.partial(self._handle_register, generation),
                functools.partial(self._handle_conflict, generation),
            )
            try:
                await session.open()
            except BotChannelError as exc:
                logger.error("Failed to start Telegram bot: %s", exc)
                self.last_error = str(exc)
                return False

            self._token = token
            self._session = session
            self._chat_id = None
            self.last_error = None
            logger.info("Telegram bot started; waiting for /start from a chat")
            return True

    async def stop(self) -> None:
        """Tear down the session (best effort) and announce the new state."""
        async with self._lock:
            await self._teardown()
        await self.broadcast_status()

    async def notify(self, message: str) -> bool:
        """Send `message` to the registered chat. Never raises."""
        if not self.status().connected:
            logger.info("Telegram not connected; skipping alert")
            return False
        try:
            await self._session.send(self._chat_id, message)
        except BotChannelError as exc:
            logger.error("Telegram delivery failed: %s", exc)
            return False
        logger.info("Telegram alert sent to chat %s", self._chat_id)
        return True

    async def broadcast_status(self) -> None:
        await self._broadcast({"type": "telegram_status", **self.status().to_dict()})

    async def _teardown(self) -> None:
        session = self._session
        self._session = None
        self._token = None
        self._chat_id = None
        self._generation += 1
        if session is None:
            return
        try:
            await session.close()
        except Exception as exc:
            logger.warning("Error while stopping Telegram bot: %s", exc)
        logger.info("Telegram bot stopped")

    async def _handle_register(self, generation: int, chat_id: str) -> None:
        if generation != self._generation or self._session is None:
            logger.debug("Ignoring registration from a replaced session")
            return
        if self._chat_id and self._chat_id != chat_id:
            logger.info("Chat %s replaces %s as alert destination", chat_id, self._chat_id)
        self._chat_id = chat_id
        logger.info("Telegram chat %s registered", chat_id)
        await self._broadcast({"type": "telegram_connected", "chatId": chat_id})

    def _handle_conflict(self, generation: int, exc: BotSessionConflict) -> None:
        if generation != self._generation or self._session is None:
            return
        if self._conflict_task is not None and not self._conflict_task.done():
            return
        logger.error("Telegram session conflict, shutting bot down: %s", exc)
        self.last_error = str(exc)
        self._conflict_task = asyncio.get_running_loop().create_task(
            self._stop_after_conflict(generation)
        )

    async def _stop_after_conflict(self, generation: int) -> None:
        async with self._lock:
            if generation != self._generation:
                return
            await self._teardown()
        await self.broadcast_status()

    async def wait_for_conflict_shutdown(self) -> None:
        if self._conflict_task is not None:
            await self._conflict_task
