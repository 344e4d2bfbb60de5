# hltv_tracker/commands.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from hltv_tracker.config import TEAM_LINKS
from hltv_tracker.models import DATE_TODAY, DATE_TOMORROW, UpcomingMatch
from hltv_tracker.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

NO_DATA = 'No data available right now, try again later.'
HANDLER_ERROR = 'Something went wrong processing that command. Try again later.'
INTERNAL_STREAM_MARKER = '/live?matchId='


@dataclass(frozen=True)
class Reply:
    """One outgoing chat message: text, or an album of (photo_url, caption)."""
    text: str = ''
    photos: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    disable_preview: bool = False


def _group_by_tournament(items) -> Dict[str, list]:
    groups: Dict[str, list] = {}
    for item in items:
        groups.setdefault(item.tournament, []).append(item)
    return groups


def _match_sort_key(match: UpcomingMatch, now: datetime) -> datetime:
    if match.starts_at is not None:
        return match.starts_at
    try:
        if match.date_label == DATE_TODAY:
            day = now.date()
        elif match.date_label == DATE_TOMORROW:
            day = now.date() + timedelta(days=1)
        else:
            day = datetime.strptime(match.date_label, '%d/%m/%y').date()
    except ValueError:
        return datetime.max
    try:
        at = datetime.strptime(match.time_label, '%H:%M').time()
    except ValueError:
        at = time(0, 0)
    return datetime.combine(day, at)


class CommandHandlers:
    """Formats store snapshots into chat replies. Read-only on the store."""

    def __init__(self, store: SnapshotStore, team_name: str,
                 status_fn: Callable[[], str] = None, now: Callable[[], datetime] = datetime.now):
        self.store = store
        self.team_name = team_name
        self.status_fn = status_fn
        self._now = now

    def help(self) -> List[Reply]:
        text = (
            f"Welcome to the {self.team_name} bot!\n"
            'Available commands:\n'
            f"/team - Current {self.team_name} lineup\n"
            f"/matches or /match - Upcoming {self.team_name} matches\n"
            f"/results - Latest {self.team_name} results\n"
            f"/live - Follow a live {self.team_name} match\n"
            '/shop - Official store\n'
            '/contact - Social media and community\n'
            '/status - Crawler status\n'
            '/start or /help - Show this message'
        )
        return [Reply(text, disable_preview=True)]

    def team(self) -> List[Reply]:
        roster = self.store.get_roster()
        if not roster:
            return [Reply(NO_DATA)]

        lines = [f"{self.team_name} lineup:"]
        lines.extend(f"• {player.name}" for player in roster)
        replies = [Reply('\n'.join(lines))]

        photos = tuple((p.image_url, p.name) for p in roster if p.image_url)
        if photos:
            replies.append(Reply(photos=photos))
        else:
            logger.warning('No player photos available for the current roster')
        return replies

    def matches(self) -> List[Reply]:
        upcoming = self.store.get_upcoming()
        if not upcoming:
            return [Reply(NO_DATA)]

        now = self._now()
        lines = [f"Upcoming {self.team_name} matches:", '']
        for tournament, group in _group_by_tournament(upcoming).items():
            lines.append(f"🏆 {tournament}")
            for match in sorted(group, key=lambda m: _match_sort_key(m, now)):
                when = f"{match.date_label} at {match.time_label}"
                lines.append(f"🔥 vs {match.opponent} - {when}")
            lines.append('')
        return [Reply('\n'.join(lines).strip())]

    def results(self) -> List[Reply]:
        results = self.store.get_results()
        if not results:
            return [Reply(NO_DATA)]

        lines = [f"Latest {self.team_name} results:", '']
        for tournament, group in _group_by_tournament(results).items():
            lines.append(f"🏆 {tournament}")
            for result in group:
                indicator = '✅' if result.is_victory else '❌'
                lines.append(f"{indicator} vs {result.opponent} - {result.score}")
            lines.append('')
        return [Reply('\n'.join(lines).strip())]

    def live(self) -> List[Reply]:
        live = self.store.get_live()
        if live is None:
            return [Reply(f"No live {self.team_name} match right now.")]

        ours, _, theirs = live.current_map_score.partition('-')
        ours_maps, _, theirs_maps = live.maps_won.partition('-')
        lines = [
            f"🔥 {self.team_name} is live! 🔥",
            f"🏆 {live.tournament} - {live.format.upper()}",
            f"{self.team_name} {ours.strip() or '0'} ({ours_maps.strip() or '0'}) - "
            f"({theirs_maps.strip() or '0'}) {theirs.strip() or '0'} {live.opponent}",
        ]
        if live.veto_details:
            lines.append('')
            lines.append('Picks and bans:')
            lines.extend(f"  - {veto}" for veto in live.veto_details)

        streams = [s for s in live.stream_links if INTERNAL_STREAM_MARKER not in s]
        if streams:
            lines.append('')
            lines.append('Top streams:')
            lines.extend(f"  - {stream}" for stream in streams)

        lines.append('')
        lines.append(f"📊 Match details:\n{live.match_link}")
        return [Reply('\n'.join(lines))]

    def shop(self) -> List[Reply]:
        return [Reply(f"Official {self.team_name} store: {TEAM_LINKS['shop']}")]

    def contact(self) -> List[Reply]:
        text = (
            'Social media:\n'
            f"- Instagram: {TEAM_LINKS['instagram']}\n"
            f"- X: {TEAM_LINKS['x']}\n"
            '\n'
            'Join the community on Discord:\n'
            f"- {TEAM_LINKS['discord']}"
        )
        return [Reply(text, disable_preview=True)]

    def status(self) -> List[Reply]:
        if self.status_fn is None:
            return [Reply(NO_DATA)]
        return [Reply(self.status_fn().strip(), disable_preview=True)]


class CommandRouter:
    """Maps a chat message to a handler by its command prefix."""

    def __init__(self, handlers: CommandHandlers):
        self.handlers = handlers
        self.routes: Dict[str, Callable[[], List[Reply]]] = {
            '/start': handlers.help,
            '/help': handlers.help,
            '/team': handlers.team,
            '/matches': handlers.matches,
            '/match': handlers.matches,
            '/results': handlers.results,
            '/live': handlers.live,
            '/shop': handlers.shop,
            '/contact': handlers.contact,
            '/status': handlers.status,
        }

    def resolve(self, text: str) -> Optional[Callable[[], List[Reply]]]:
        words = text.strip().lower().split()
        if not words:
            return None
        # "/team@SomeBot" in group chats
        command = words[0].split('@', 1)[0]
        return self.routes.get(command)

    def dispatch(self, text: str) -> List[Reply]:
        handler = self.resolve(text)
        if handler is None:
            logger.warning(f"Unrecognized command: {text!r}")
            commands = ', '.join(sorted(set(self.routes)))
            return [Reply(f"Unrecognized command. Try: {commands}.")]

        try:
            return handler()
        except Exception as e:
            logger.error(f"Error running {text!r}: {e}", exc_info=True)
            return [Reply(HANDLER_ERROR)]
