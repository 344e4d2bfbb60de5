from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from hltv_tracker.config import TrackerSettings
from hltv_tracker.parsers.hltv_parser import HltvParser

FIXTURE_DIR = Path(__file__).parent / 'fixtures'

# First upcoming match in team_matches.html starts at this unix time
FIRST_MATCH_UNIX = 1760900400
NOW = datetime.fromtimestamp(FIRST_MATCH_UNIX) - timedelta(minutes=30)

MATCH_URL = 'https://www.hltv.org/matches/2385000/vitality-vs-furia-iem-chengdu-2025'


def load_fixture(name: str) -> str:
    return (FIXTURE_DIR / name).read_text(encoding='utf-8')


def build_matches_page(groups) -> str:
    """Render a team matches table from [(tournament, [(opponent, score, unix_ms), ...]), ...]."""
    parts = ['<html><body><table class="table-container match-table">']
    for tournament, rows in groups:
        parts.append(
            '<thead><tr class="event-header-cell"><th class="text-ellipsis">'
            f'<a href="/events/1/x">{tournament}</a></th></tr></thead><tbody>'
        )
        for opponent, score, unix in rows:
            left, right = score.split(':')
            unix_attr = f' data-unix="{unix}"' if unix else ''
            parts.append(
                f'<tr class="team-row"><td class="date-cell"><span{unix_attr}></span></td>'
                '<td><div class="team-flex team-1"><span class="team-name team-1">FURIA</span></div>'
                f'<div class="score-cell"><span>{left}</span> : <span>{right}</span></div>'
                f'<div class="team-flex team-2"><span class="team-name team-2">{opponent}</span></div>'
                '</td></tr>'
            )
        parts.append('</tbody>')
    parts.append('</table></body></html>')
    return ''.join(parts)


class FakeFetcher:
    """Serves canned HTML by URL; a missing URL is a failed fetch."""

    def __init__(self, pages: dict = None, start_ok: bool = True):
        self.pages = dict(pages or {})
        self.start_ok = start_ok
        self.calls = []
        self.closed = False
        self.restart_checks = 0
        self.failure_counts = Counter()
        self.hook = None

    def start(self, attempts: int = 1) -> bool:
        return self.start_ok

    def fetch(self, url, ready_selector, timeout_ms=None):
        self.calls.append(url)
        if self.hook is not None:
            self.hook(url)
        html = self.pages.get(url)
        if html is None:
            self.failure_counts['timeout'] += 1
            return None
        return BeautifulSoup(html, 'html.parser')

    def restart_if_due(self, now=None):
        self.restart_checks += 1
        return False

    def close(self):
        self.closed = True

    def count(self, url) -> int:
        return self.calls.count(url)


@pytest.fixture
def settings() -> TrackerSettings:
    return TrackerSettings(team_id='8297', team_slug='furia', team_name='FURIA', crawl_interval=1800)


@pytest.fixture
def parser() -> HltvParser:
    return HltvParser(now=lambda: NOW)


@pytest.fixture
def soup():
    def _soup(name: str) -> BeautifulSoup:
        return BeautifulSoup(load_fixture(name), 'html.parser')
    return _soup


@pytest.fixture
def pages(settings) -> dict:
    return {
        settings.team_info_url: load_fixture('team_info.html'),
        settings.team_matches_url: load_fixture('team_matches.html'),
        settings.live_index_url: load_fixture('live_index.html'),
        MATCH_URL: load_fixture('match_detail.html'),
    }
