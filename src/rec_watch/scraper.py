"""
Headless page fetcher for ActiveCommunities activity pages.

DrissionPage is synchronous, so each fetch runs in a worker thread and the
event loop keeps serving the control API while the page renders.
"""

import asyncio
import logging
import threading
import time
from typing import Optional

from DrissionPage import Chromium, ChromiumOptions
from DrissionPage.errors import BaseError

from .config import DEFAULT_BROWSER_IDLE_TIMEOUT, DEFAULT_BROWSER_PORT, DEFAULT_USER_AGENT
from .errors import FetchNavigationError, FetchTimeout
from .models import PageData
from .parsing import extract_page_data

logger = logging.getLogger(__name__)

# Extra seconds allowed on top of navigation + settle before giving up on the thread.
FETCH_GRACE = 10.0

BODY_TEXT_JS = "return document.body ? document.body.innerText : '';"
HEADING_JS = "const h = document.querySelector('h1'); return h ? h.innerText : '';"


class PageFetcher:
    """Renders a URL in a shared headless Chromium and extracts PageData."""

    def __init__(
        self,
        browser_port: int = DEFAULT_BROWSER_PORT,
        user_agent: str = DEFAULT_USER_AGENT,
        idle_timeout: int = DEFAULT_BROWSER_IDLE_TIMEOUT,
    ) -> None:
        self._browser_port = browser_port
        self._user_agent = user_agent
        self._idle_timeout = idle_timeout
        self._browser: Optional[Chromium] = None
        self._idle_timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    # --- Browser management ---
    def close(self) -> None:
        with self._lock:
            if self._browser:
                try:
                    self._browser.quit()
                except BaseError as exc:
                    logger.warning("Error closing browser: %s", exc)
                logger.debug("Closed browser")
                self._browser = None
            if self._idle_timer:
                self._idle_timer.cancel()
                self._idle_timer = None

    def _get_browser(self) -> Chromium:
        with self._lock:
            if self._browser is None:
                options = (
                    ChromiumOptions(read_file=False)
                    .headless(True)
                    .set_user_agent(self._user_agent)
                    .set_load_mode("eager")
                    .set_local_port(self._browser_port)
                )
                self._browser = Chromium(options)
                logger.debug("Started new browser instance on port %d", self._browser_port)
            if self._idle_timer:
                self._idle_timer.cancel()
            self._idle_timer = threading.Timer(self._idle_timeout, self.close)
            self._idle_timer.daemon = True
            self._idle_timer.start()
            return self._browser

    def _fetch_sync(self, url: str, timeout: float, settle: float) -> PageData:
        try:
            browser = self._get_browser()
            tab = browser.new_tab()
        except (BaseError, OSError) as exc:
            raise FetchNavigationError(f"Could not start browser: {exc}") from exc

        try:
            started = time.monotonic()
            loaded = tab.get(url, timeout=timeout, retry=0)
            if not loaded:
                if time.monotonic() - started >= timeout:
                    raise FetchTimeout(f"Navigation to {url} timed out after {timeout:.0f}s")
                raise FetchNavigationError(f"Navigation to {url} failed")

            # Wait for the activity widget to render.
            tab.wait(settle)

            body_text = tab.run_js(BODY_TEXT_JS) or ""
            heading = tab.run_js(HEADING_JS) or ""
            return extract_page_data(body_text, heading, tab.title or "")
        except BaseError as exc:
            raise FetchNavigationError(f"Browser error while reading {url}: {exc}") from exc
        finally:
            try:
                tab.close()
            except BaseError as exc:
                logger.debug("Failed to close tab: %s", exc)

    async def fetch(self, url: str, *, timeout: float, settle: float) -> PageData:
        """
        Load `url`, wait `settle` seconds for dynamic content, extract fields.

        Raises:
            FetchTimeout: If the page did not load within `timeout` seconds.
            FetchNavigationError: If the browser could not load or read it.
        """
        logger.debug("Fetching %s (timeout=%ss, settle=%ss)", url, timeout, settle)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._fetch_sync, url, timeout, settle),
                timeout=timeout + settle + FETCH_GRACE,
            )
        except asyncio.TimeoutError as exc:
            raise FetchTimeout(f"Fetching {url} exceeded {timeout + settle:.0f}s") from exc
