"""Exceptions raised inside rec_watch. None of them are fatal to the process."""


class RecWatchError(Exception):
    """Base class for all rec_watch errors."""


class FetchError(RecWatchError):
    """The activity page could not be loaded."""


class FetchTimeout(FetchError):
    """Navigation or settle wait exceeded the configured timeout."""


class FetchNavigationError(FetchError):
    """The browser failed to navigate to or read the page."""


class NotificationDeliveryError(RecWatchError):
    """A desktop alert or browser launch failed."""


class BotChannelError(RecWatchError):
    """The Telegram bot session could not be created or used."""


class BotTokenInvalid(BotChannelError):
    """Telegram rejected the bot token."""


class BotSessionConflict(BotChannelError):
    """Another process is already polling updates for the same token."""


class ValidationError(RecWatchError):
    """Bad input at the control surface."""
