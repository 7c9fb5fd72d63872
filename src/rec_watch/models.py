"""
In-memory data model shared by the checker, the poller and the server.

Nothing here is persisted; all of it is reset when the process restarts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PageData:
    """Fields extracted from one rendered activity page."""

    has_enroll_indicator: bool
    is_full: bool
    openings_count: Optional[int]
    activity_title: str
    has_waitlist: bool = False


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single fetch-and-evaluate cycle."""

    url: str
    available: bool = False
    openings_count: Optional[int] = None
    is_full: bool = False
    activity_title: str = ""
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def failed(cls, url: str, error: str) -> "CheckResult":
        return cls(url=url, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "available": self.available,
            "openingsCount": self.openings_count,
            "isFull": self.is_full,
            "activityTitle": self.activity_title,
            "url": self.url,
            "error": self.error,
        }


@dataclass
class PollConfig:
    """Target page and polling interval; mutated by the control API."""

    target_url: str
    interval_seconds: int

    def update(
        self, url: Optional[str] = None, interval_seconds: Optional[int] = None
    ) -> None:
        """
        Apply the provided fields. Nothing is changed if any field is invalid.

        Raises:
            ValidationError: If the URL is blank or the interval is not a
                positive integer.
        """
        if url is not None and not url.strip():
            raise ValidationError("url must not be empty")
        if interval_seconds is not None and (
            isinstance(interval_seconds, bool)
            or not isinstance(interval_seconds, int)
            or interval_seconds <= 0
        ):
            raise ValidationError("interval must be a positive integer")

        if url is not None:
            self.target_url = url.strip()
        if interval_seconds is not None:
            self.interval_seconds = interval_seconds


@dataclass
class PollingState:
    is_polling: bool = False
    check_count: int = 0
    last_result: Optional[CheckResult] = None

    def record(self, result: CheckResult) -> None:
        """Keep the latest result; only successful checks are counted."""
        self.last_result = result
        if result.ok:
            self.check_count += 1


@dataclass(frozen=True)
class BotStatus:
    active: bool = False
    configured: bool = False
    connected: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "active": self.active,
            "configured": self.configured,
            "connected": self.connected,
        }
