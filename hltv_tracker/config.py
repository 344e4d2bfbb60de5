# hltv_tracker/config.py

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from hltv_tracker.errors import ConfigError

HLTV_BASE_URL = 'https://www.hltv.org'

# Polling cadence (seconds) per state; IDLE uses the configured base interval
POLL_CONFIG = {
    'match_today_interval': 600,     # 10 min while a match is scheduled today
    'live_interval': 180,            # 3 min while a live match is published
    'sweep_interval': 3600,          # cache sweep once per hour
    'startup_attempts': 3,           # browser session attempts before degrading
}

# Document cache TTLs (seconds)
CACHE_CONFIG = {
    'team_info': 3600,               # roster page, 1 hour
    'matches': 600,                  # match listings, 10 minutes
}

# Browser fetching (Playwright headless Chromium)
BROWSER_CONFIG = {
    'page_load_timeout': 10000,      # ms, readiness wait for regular pages
    'index_load_timeout': 15000,     # ms, live-matches index renders slower
    'max_attempts': 2,               # one retry after a session re-init
    'daily_restart_hour': 4,         # local hour for the proactive restart
    'block_images': True,
    'viewport': {'width': 1280, 'height': 720},
    'user_agent': ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                   '(KHTML, like Gecko) Chrome/135.0.0.0 Safari/537.36'),
    'launch_args': [
        '--disable-gpu',
        '--no-sandbox',
        '--disable-dev-shm-usage',
        '--disable-extensions',
        '--disable-notifications',
        '--disable-popup-blocking',
    ],
}

# Readiness markers per page type
READY_SELECTORS = {
    'team_info': 'div.bodyshot-team.g-grid',
    'matches': '.table-container.match-table',
    'live_index': '.live-matches-wrapper',
    'match_detail': '.standard-box.veto-box',
}

# Telegram Bot API transport
TELEGRAM_CONFIG = {
    'api_base': 'https://api.telegram.org',
    'poll_timeout': 30,              # seconds, long polling
    'request_timeout': 40,
    'max_retries': 3,
    'retry_delay_base': 2,
    'retry_delay_max': 30,
    'handler_workers': 8,
}

# Static links served by /shop and /contact
TEAM_LINKS = {
    'shop': 'https://www.furia.gg/',
    'instagram': 'https://www.instagram.com/furia/',
    'x': 'https://x.com/FURIA',
    'discord': 'https://discord.gg/furia',
}

DEFAULT_CRAWL_INTERVAL = 1800       # 30 min base interval while IDLE


@dataclass(frozen=True)
class TrackerSettings:
    """Startup configuration, immutable once loaded."""
    team_id: str
    team_slug: str
    team_name: str
    crawl_interval: float = DEFAULT_CRAWL_INTERVAL
    browser_executable_path: Optional[str] = None
    telegram_token: str = ''
    telegram_username: str = ''
    log_level: str = 'INFO'

    @property
    def team_info_url(self) -> str:
        return f"{HLTV_BASE_URL}/team/{self.team_id}/{self.team_slug}#tab-infoBox"

    @property
    def team_matches_url(self) -> str:
        return f"{HLTV_BASE_URL}/team/{self.team_id}/{self.team_slug}#tab-matchesBox"

    @property
    def live_index_url(self) -> str:
        return f"{HLTV_BASE_URL}/matches"


def load_settings(env_file: Optional[str] = None) -> TrackerSettings:
    """Build settings from the environment, reading a .env file first if present."""
    if env_file is None:
        env_file = str(Path(__file__).parent.parent / '.env')
    load_dotenv(env_file)

    team_id = os.environ.get('HLTV_TEAM_ID', '').strip()
    team_slug = os.environ.get('HLTV_TEAM_SLUG', '').strip()
    if not team_id or not team_slug:
        raise ConfigError('HLTV_TEAM_ID and HLTV_TEAM_SLUG must be set')

    raw_interval = os.environ.get('CRAWL_INTERVAL_SECONDS', str(DEFAULT_CRAWL_INTERVAL))
    try:
        crawl_interval = float(raw_interval)
    except ValueError:
        raise ConfigError(f"CRAWL_INTERVAL_SECONDS is not a number: {raw_interval!r}")
    if crawl_interval <= 0:
        raise ConfigError('CRAWL_INTERVAL_SECONDS must be positive')

    return TrackerSettings(
        team_id=team_id,
        team_slug=team_slug,
        team_name=os.environ.get('HLTV_TEAM_NAME', '').strip() or team_slug.upper(),
        crawl_interval=crawl_interval,
        browser_executable_path=os.environ.get('BROWSER_EXECUTABLE_PATH') or None,
        telegram_token=os.environ.get('TELEGRAM_BOT_TOKEN', ''),
        telegram_username=os.environ.get('TELEGRAM_BOT_USERNAME', ''),
        log_level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    )
