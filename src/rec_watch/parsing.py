"""Pure text checks applied to the rendered page body."""

import re
from typing import Optional

from .models import PageData

ENROLL_MARKER = "Enroll Now"
FULL_MARKERS = ("Full", "currently full")
WAITLIST_MARKERS = ("waitlist", "Waitlist")
OPENINGS_PATTERN = re.compile(r"(\d+)\s+openings?\s+remaining", re.IGNORECASE)


def parse_openings(text: str) -> Optional[int]:
    """Return N from "<N> opening(s) remaining", or None if not present."""
    match = OPENINGS_PATTERN.search(text or "")
    return int(match.group(1)) if match else None


def _contains_any(text: str, markers) -> bool:
    return any(marker in text for marker in markers)


def extract_page_data(body_text: str, heading: Optional[str], page_title: str = "") -> PageData:
    """Build PageData from the page's visible text and its first <h1>."""
    body_text = body_text or ""
    title = (heading or "").strip() or (page_title or "").strip()
    # Plain substring match: "Fully booked" counts as full.
    return PageData(
        has_enroll_indicator=ENROLL_MARKER in body_text,
        is_full=_contains_any(body_text, FULL_MARKERS),
        openings_count=parse_openings(body_text),
        activity_title=title,
        has_waitlist=_contains_any(body_text, WAITLIST_MARKERS),
    )


def is_available(page: PageData) -> bool:
    return page.has_enroll_indicator and not page.is_full
