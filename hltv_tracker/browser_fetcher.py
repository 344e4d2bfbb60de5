# hltv_tracker/browser_fetcher.py

import logging
import threading
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Optional

from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from hltv_tracker.config import BROWSER_CONFIG
from hltv_tracker.errors import FetchError, FetchTimeout, SessionCrashed, UpstreamUnreachable

logger = logging.getLogger(__name__)

# Playwright error messages that mean the browser itself is gone
CRASH_MARKERS = (
    'target closed',
    'has been closed',
    'browser closed',
    'crash',
    'connection closed',
    'disconnected',
)


def classify_error(url: str, exc: Exception) -> FetchError:
    """Map a Playwright exception onto the fetch error taxonomy."""
    if isinstance(exc, FetchError):
        return exc
    message = str(exc)
    if isinstance(exc, PlaywrightTimeoutError):
        return FetchTimeout(url, message)
    lowered = message.lower()
    if 'net::err_' in lowered or 'ns_error_' in lowered:
        return UpstreamUnreachable(url, message)
    if any(marker in lowered for marker in CRASH_MARKERS):
        return SessionCrashed(url, message)
    if isinstance(exc, PlaywrightError):
        return UpstreamUnreachable(url, message)
    return SessionCrashed(url, message)


class BrowserFetcher:
    """
    Fetches fully rendered pages through one headless Chromium session.

    The session (Playwright driver, browser, context) is created lazily and
    reused for every fetch. A failed fetch re-initializes the session once and
    retries once before giving up. Failures are logged and counted, and the
    caller only ever sees ``None``.

    Playwright's sync API is bound to the thread that started it, so the
    session should be created, used and closed by a single owner thread.
    The lock additionally serializes any access from elsewhere.
    """

    def __init__(self, config: dict = None, executable_path: Optional[str] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = dict(BROWSER_CONFIG)
        self.config.update(config or {})
        self.timeout = self.config.get('page_load_timeout', 10000)
        self.max_attempts = max(1, self.config.get('max_attempts', 2))
        self.restart_hour = self.config.get('daily_restart_hour', 4)
        self.executable_path = executable_path
        self._clock = clock
        self._lock = threading.RLock()
        self._playwright = None
        self._browser = None
        self._context = None
        self._next_restart_at = None
        self.fetch_count = 0
        self.session_starts = 0
        self.failure_counts = Counter()
        self.last_error_type = None  # 'timeout', 'crash', 'connection'

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def has_session(self) -> bool:
        return self._browser is not None

    def start(self, attempts: int = 1) -> bool:
        """Eagerly acquire the session. Returns False if every attempt failed."""
        for attempt in range(1, attempts + 1):
            if self._ensure_browser():
                return True
            # fetch() counts its own launch failures
            self.failure_counts['crash'] += 1
            self.last_error_type = 'crash'
            logger.warning(f"Browser session not available (attempt {attempt}/{attempts})")
        logger.error(f"Could not start a browser session after {attempts} attempts")
        return False

    def _launch_options(self) -> dict:
        options = {
            'headless': True,
            'args': list(self.config.get('launch_args', [])),
        }
        if self.executable_path:
            options['executable_path'] = self.executable_path
        return options

    def _ensure_browser(self) -> bool:
        """Launch the browser if not already running."""
        with self._lock:
            if self._browser is not None:
                return True
            try:
                self._playwright = sync_playwright().start()
                self._browser = self._playwright.chromium.launch(**self._launch_options())
                self._context = self._browser.new_context(
                    user_agent=self.config.get('user_agent'),
                    viewport=self.config.get('viewport'),
                )
                if self.config.get('block_images'):
                    self._context.route('**/*', _block_images)
            except Exception as e:
                logger.error(f"Failed to launch browser: {e}")
                self._teardown()
                return False

            self.session_starts += 1
            self._next_restart_at = self._compute_next_restart(self._clock())
            logger.info(f"Browser session started (next scheduled restart {self._next_restart_at:%Y-%m-%d %H:%M})")
            return True

    def _teardown(self):
        """Release whatever part of the session exists. Never raises."""
        for name in ('_context', '_browser'):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    resource.close()
                except Exception as e:
                    logger.warning(f"Error closing browser {name.strip('_')}: {e}")
                setattr(self, name, None)
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright driver: {e}")
            self._playwright = None

    def close(self):
        """Clean up browser resources."""
        with self._lock:
            if self._browser is not None or self._playwright is not None:
                logger.info('Closing browser session')
            self._teardown()

    def restart(self) -> bool:
        """Tear the session down and start a fresh one."""
        with self._lock:
            self._teardown()
            return self._ensure_browser()

    def _compute_next_restart(self, now: datetime) -> datetime:
        candidate = now.replace(hour=self.restart_hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def restart_if_due(self, now: datetime = None) -> bool:
        """Recreate the session once the daily restart hour has passed."""
        now = now or self._clock()
        with self._lock:
            if self._browser is None or self._next_restart_at is None:
                return False
            if now < self._next_restart_at:
                return False
            logger.info(f"Scheduled daily browser restart ({self.restart_hour:02d}:00)")
            return self.restart()

    def _load(self, url: str, ready_selector: str, timeout: int) -> str:
        page = self._context.new_page()
        page.set_default_timeout(timeout)
        try:
            page.goto(url, wait_until='domcontentloaded', timeout=timeout)
            page.wait_for_selector(ready_selector, state='attached', timeout=timeout)
            return page.content()
        finally:
            try:
                page.close()
            except PlaywrightError as e:
                logger.debug(f"Page close failed for {url}: {e}")

    def fetch(self, url: str, ready_selector: str,
              timeout_ms: int = None) -> Optional[BeautifulSoup]:
        """
        Render ``url`` and wait for ``ready_selector`` to be present.

        Returns the parsed document, or None after the retry policy is
        exhausted.
        """
        timeout = timeout_ms or self.timeout
        with self._lock:
            self.fetch_count += 1
            for attempt in range(1, self.max_attempts + 1):
                self.last_error_type = None
                try:
                    if not self._ensure_browser():
                        raise SessionCrashed(url, 'browser session unavailable')
                    logger.info(f"Browser fetching: {url}")
                    html = self._load(url, ready_selector, timeout)
                    logger.debug(f"OK {url} ({len(html)} chars)")
                    return BeautifulSoup(html, 'html.parser')
                except Exception as e:
                    error = classify_error(url, e)
                    self.last_error_type = error.error_type
                    self.failure_counts[error.error_type] += 1
                    logger.warning(f"{type(error).__name__} for {url} "
                                   f"(attempt {attempt}/{self.max_attempts}): {e}")
                    if attempt < self.max_attempts:
                        logger.info('Re-initializing browser session before retry')
                        self._teardown()

            logger.error(f"Giving up on {url} after {self.max_attempts} attempts")
            return None


def _block_images(route):
    if route.request.resource_type == 'image':
        route.abort()
    else:
        route.continue_()
