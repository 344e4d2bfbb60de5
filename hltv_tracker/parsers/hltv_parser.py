# hltv_tracker/parsers/hltv_parser.py

import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from hltv_tracker.config import HLTV_BASE_URL
from hltv_tracker.errors import ExtractionIncomplete
from hltv_tracker.models import (
    DATE_TODAY, DATE_TOMORROW, DATE_UNKNOWN, MAX_RESULTS, MAX_STREAMS, MAX_UPCOMING,
    TIME_UNKNOWN, UNKNOWN, LiveMatchState, MatchRef, MatchResult, Player, UpcomingMatch,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = '%d/%m/%y'
TIME_PATTERN = re.compile(r'^\d{1,2}:\d{2}$')
LITERAL_DATE_PATTERN = re.compile(r'^\d{1,2}/\d{1,2}/\d{2}$')
BEST_OF_PATTERN = re.compile(r'best of (\d)', re.I)


def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ''
    return re.sub(r'\s+', ' ', node.get_text(' ', strip=True)).strip()


def _default(field: str, default):
    logger.debug(str(ExtractionIncomplete(field, default)))
    return default


def is_match_today(match: UpcomingMatch, today: date) -> bool:
    """True when ``match`` is scheduled for ``today`` or has no known date."""
    if match.is_today or match.date_unknown:
        return True
    if match.starts_at is not None:
        return match.starts_at.date() == today
    if LITERAL_DATE_PATTERN.match(match.date_label):
        try:
            return datetime.strptime(match.date_label, DATE_FORMAT).date() == today
        except ValueError:
            return False
    return False


class HltvParser:
    """
    Extracts team data from rendered HLTV pages.

    Every method is pure: it only reads the document it is given. Missing
    fields fall back to defaults ("Unknown", "TBA", "unknown", empty tuples)
    instead of failing.
    """

    def __init__(self, now=datetime.now):
        self._now = now

    # --- Team info page ---

    def extract_roster(self, doc: BeautifulSoup) -> Tuple[Player, ...]:
        """Parse the lineup from the team info page."""
        # Strategy 1: body-shot grid at the top of the team page
        elements = doc.select('div.bodyshot-team.g-grid a')
        # Strategy 2: roster cards further down
        if not elements:
            elements = doc.select('div.team-roster a.col-custom')
            if elements:
                logger.debug(f"Found {len(elements)} players via team-roster cards")

        players = []
        for element in elements:
            name = _text(element.select_one('div.text-ellipsis.nickname-container span.text-ellipsis.bold'))
            if not name:
                name = _text(element.select_one('div.nickname'))
            if not name:
                name = (element.get('title') or '').strip()
            if not name:
                logger.warning('Skipping roster entry without a player name')
                continue
            players.append(Player(name=name, image_url=self._player_image(element)))

        logger.info(f"Roster: {len(players)} players")
        return tuple(players)

    def _player_image(self, element: Tag) -> Optional[str]:
        img = element.select_one('div.overlayImageFrame img')
        url = ''
        if img is not None:
            url = img.get('src') or img.get('data-src') or ''
        if not url:
            img = element.select_one('img.bodyshot-team-img')
            url = img.get('src', '') if img is not None else ''
        return url or None

    # --- Team matches page ---

    def _match_tables(self, doc: BeautifulSoup) -> List[Tag]:
        tables = doc.select('.table-container.match-table')
        if not tables:
            tables = doc.select('table.match-table')
            if tables:
                logger.warning("No '.table-container.match-table' found, using 'table.match-table'")
        return tables

    def _tournament_rows(self, doc: BeautifulSoup) -> Iterator[Tuple[str, Tag]]:
        """Yield (tournament, row) pairs in page order.

        Each table interleaves <thead> event headers with <tbody> blocks. A
        header without a tournament link does not consume a body.
        """
        for table in self._match_tables(doc):
            headers = table.find_all('thead')
            bodies = table.find_all('tbody')
            body_index = 0
            for header in headers:
                if body_index >= len(bodies):
                    break
                link = header.select_one('tr.event-header-cell th.text-ellipsis a')
                if link is None:
                    logger.debug('Event header without tournament, skipping')
                    continue
                tournament = _text(link) or _default('tournament', UNKNOWN)
                for row in bodies[body_index].select('tr.team-row'):
                    yield tournament, row
                body_index += 1

    @staticmethod
    def _row_opponent(row: Tag) -> str:
        opponent = _text(row.select_one('.team-name.team-2'))
        if not opponent:
            opponent = _text(row.select_one('.team-flex:not(.team-1) .team-name'))
        return opponent

    @staticmethod
    def _row_score(row: Tag) -> Optional[Tuple[str, str]]:
        score = _text(row.select_one('.score-cell'))
        if ':' not in score:
            return None
        left, _, right = score.partition(':')
        return left.strip(), right.strip()

    @staticmethod
    def _row_unix(row: Tag) -> Optional[str]:
        span = row.select_one('td.date-cell span')
        unix = span.get('data-unix') if span is not None else None
        if not unix:
            cell = row.select_one('td.date-cell')
            unix = cell.get('data-unix') if cell is not None else None
        return unix or None

    def _schedule_labels(self, row: Tag) -> Tuple[str, str, Optional[datetime]]:
        """Resolve (date_label, time_label, starts_at) for an upcoming row."""
        raw = _text(row.select_one('td.date-cell span')) or _text(row.select_one('td.date-cell'))
        unix = self._row_unix(row)
        if unix:
            try:
                starts_at = datetime.fromtimestamp(int(unix) / 1000)
            except (ValueError, OverflowError, OSError):
                logger.warning(f"Invalid data-unix value: {unix}")
            else:
                today = self._now().date()
                if starts_at.date() == today:
                    label = DATE_TODAY
                elif starts_at.date() == today + timedelta(days=1):
                    label = DATE_TOMORROW
                else:
                    label = starts_at.strftime(DATE_FORMAT)
                return label, starts_at.strftime('%H:%M'), starts_at

        if TIME_PATTERN.match(raw):
            # A bare time is only shown for matches later today
            return DATE_TODAY, raw, None
        if LITERAL_DATE_PATTERN.match(raw):
            return raw, _default('time', TIME_UNKNOWN), None
        return _default('date', DATE_UNKNOWN), _default('time', TIME_UNKNOWN), None

    def extract_upcoming(self, doc: BeautifulSoup) -> Tuple[UpcomingMatch, ...]:
        """Parse up to MAX_UPCOMING scheduled matches, in page order."""
        matches = []
        for tournament, row in self._tournament_rows(doc):
            score = self._row_score(row)
            if score is None or score != ('-', '-'):
                continue
            opponent = self._row_opponent(row)
            if not opponent:
                logger.warning(f"Upcoming match without opponent skipped ({tournament})")
                continue
            date_label, time_label, starts_at = self._schedule_labels(row)
            matches.append(UpcomingMatch(date_label, time_label, opponent, tournament, starts_at))
            logger.debug(f"Upcoming: vs {opponent} - {tournament} ({date_label}, {time_label})")
            if len(matches) >= MAX_UPCOMING:
                break

        logger.info(f"Upcoming matches: {len(matches)}")
        return tuple(matches)

    @staticmethod
    def _row_victory(row: Tag, score: Tuple[str, str]) -> bool:
        if row.select_one('.team-flex.team-1.lost') or row.select_one('.team-flex.lost .team-name.team-1'):
            return False
        if row.select_one('.team-flex.team-2.lost') or row.select_one('.team-flex.lost .team-name.team-2'):
            return True
        try:
            return int(score[0]) > int(score[1])
        except ValueError:
            return False

    def extract_results(self, doc: BeautifulSoup) -> Tuple[MatchResult, ...]:
        """Parse up to MAX_RESULTS finished matches, most recent first."""
        results = []
        for tournament, row in self._tournament_rows(doc):
            score = self._row_score(row)
            if score is None or '-' in score or not all(score):
                continue
            opponent = self._row_opponent(row)
            if not opponent:
                logger.warning(f"Result without opponent skipped: {score[0]}:{score[1]} ({tournament})")
                continue
            victory = self._row_victory(row, score)
            results.append(MatchResult(f"{score[0]}:{score[1]}", opponent, tournament, victory))
            if len(results) >= MAX_RESULTS:
                break

        logger.info(f"Recent results: {len(results)}")
        return tuple(results)

    # --- Live matches index and match page ---

    def extract_live(self, matches_doc: BeautifulSoup, team_id: str) -> Optional[MatchRef]:
        """Find the tracked team's live match on the /matches index."""
        for container in matches_doc.select('div.match-wrapper.live-match-container'):
            team1_id = container.get('team1', '')
            team2_id = container.get('team2', '')
            if team_id not in (team1_id, team2_id):
                continue

            tracked_first = team_id == team1_id
            opponent_id = team2_id if tracked_first else team1_id

            opponent = ''
            teams = container.select('div.match-team')
            opponent_index = 1 if tracked_first else 0
            if len(teams) > opponent_index:
                opponent = _text(teams[opponent_index].select_one('.match-teamname'))

            current = self._score_pair(container, 'span.current-map-score', team_id, opponent_id)
            maps_won = self._score_pair(container, 'span[data-livescore-maps-won-for]', team_id, opponent_id)

            link = container.select_one('a.match-top') or container.select_one('a[href*="/matches/"]')
            href = link.get('href', '') if link is not None else ''
            if href and not href.startswith('http'):
                href = f"{HLTV_BASE_URL}{href}"

            return MatchRef(
                match_link=href,
                opponent=opponent or _default('opponent', UNKNOWN),
                opponent_id=opponent_id,
                current_map_score=current,
                maps_won=maps_won,
                tournament=_text(container.select_one('div.match-event.text-ellipsis'))
                or _text(container.select_one('.match-event'))
                or _default('tournament', UNKNOWN),
            )
        return None

    @staticmethod
    def _score_pair(container: Tag, selector: str, team_id: str, opponent_id: str) -> str:
        ours = _text(container.select_one(f'{selector}[data-livescore-team="{team_id}"]')) or '0'
        theirs = _text(container.select_one(f'{selector}[data-livescore-team="{opponent_id}"]')) or '0'
        return f"{ours}-{theirs}"

    def extract_live_detail(self, match_doc: BeautifulSoup, ref: MatchRef) -> LiveMatchState:
        """Combine the index entry with format, veto and streams from the match page."""
        match_format = 'unknown'
        format_box = match_doc.select_one('div.standard-box.veto-box .padding.preformatted-text')
        found = BEST_OF_PATTERN.search(_text(format_box))
        if found and found.group(1) in ('1', '3', '5'):
            match_format = f"bo{found.group(1)}"
        elif format_box is None:
            _default('format', match_format)

        veto = []
        for item in match_doc.select('div.standard-box.veto-box .padding div'):
            text = _text(item)
            if text:
                veto.append(text)

        return LiveMatchState(
            opponent=ref.opponent,
            current_map_score=ref.current_map_score,
            maps_won=ref.maps_won,
            tournament=ref.tournament,
            format=match_format,
            match_link=ref.match_link,
            veto_details=tuple(veto),
            stream_links=self._top_streams(match_doc),
        )

    @staticmethod
    def _top_streams(match_doc: BeautifulSoup) -> Tuple[str, ...]:
        streams = []
        for box in match_doc.select('div.stream-box'):
            link = box.select_one('a[href]')
            url = link.get('href', '') if link is not None else ''
            if not url:
                url = box.get('data-stream-embed', '')
            if not url:
                continue
            digits = re.sub(r'[^0-9]', '', _text(box.select_one('span.viewers')))
            streams.append((int(digits) if digits else 0, url))

        # Stable sort keeps page order between equal viewer counts
        streams.sort(key=lambda s: s[0], reverse=True)
        return tuple(url for _, url in streams[:MAX_STREAMS])
