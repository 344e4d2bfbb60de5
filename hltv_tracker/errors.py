# hltv_tracker/errors.py


class TrackerError(Exception):
    """Base class for tracker errors."""


class ConfigError(TrackerError):
    """Missing or invalid startup configuration."""


class FetchError(TrackerError):
    """A browser fetch did not produce a document."""

    error_type = 'fetch'

    def __init__(self, url: str, message: str = ''):
        self.url = url
        super().__init__(message or f"fetch failed for {url}")


class FetchTimeout(FetchError):
    """The readiness marker never appeared within the wait."""

    error_type = 'timeout'


class SessionCrashed(FetchError):
    """The browser or its driver process died."""

    error_type = 'crash'


class UpstreamUnreachable(FetchError):
    """Network or DNS failure reaching the site."""

    error_type = 'connection'


class ExtractionIncomplete(TrackerError):
    """A required field was missing and a default was substituted.

    Only used for logging inside the parser; never raised to callers.
    """

    def __init__(self, field: str, default):
        self.field = field
        self.default = default
        super().__init__(f"missing {field}, using {default!r}")


class TelegramError(TrackerError):
    """The Telegram Bot API rejected a call or could not be reached."""
