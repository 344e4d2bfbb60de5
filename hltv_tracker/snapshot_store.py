# hltv_tracker/snapshot_store.py

import logging
import threading
from typing import Dict, Iterable, Optional, Tuple

from hltv_tracker.models import (
    MAX_RESULTS, MAX_UPCOMING, LiveMatchState, MatchResult, Player, UpcomingMatch,
)

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Latest published value of each data kind.

    Every slot holds an immutable value (tuples of frozen records) and is
    replaced by a single reference assignment, so readers never lock and
    always see a complete value from some earlier publish. Writers are
    serialized among themselves by a lock.
    """

    def __init__(self):
        self._write_lock = threading.Lock()
        self._roster: Tuple[Player, ...] = ()
        self._upcoming: Tuple[UpcomingMatch, ...] = ()
        self._results: Tuple[MatchResult, ...] = ()
        self._live: Optional[LiveMatchState] = None
        self.publish_counts: Dict[str, int] = {'roster': 0, 'upcoming': 0, 'results': 0, 'live': 0}

    # --- Readers (non-blocking) ---

    def get_roster(self) -> Tuple[Player, ...]:
        return self._roster

    def get_upcoming(self) -> Tuple[UpcomingMatch, ...]:
        return self._upcoming

    def get_results(self) -> Tuple[MatchResult, ...]:
        return self._results

    def get_live(self) -> Optional[LiveMatchState]:
        return self._live

    def snapshot(self) -> dict:
        return {
            'roster': self._roster,
            'upcoming': self._upcoming,
            'results': self._results,
            'live': self._live,
        }

    # --- Writers ---

    def publish_roster(self, players: Iterable[Player]):
        value = tuple(players)
        with self._write_lock:
            self._roster = value
            self.publish_counts['roster'] += 1
        logger.debug(f"Published roster ({len(value)} players)")

    def publish_upcoming(self, matches: Iterable[UpcomingMatch]):
        value = tuple(matches)
        if len(value) > MAX_UPCOMING:
            logger.debug(f"Truncating {len(value)} upcoming matches to {MAX_UPCOMING}")
            value = value[:MAX_UPCOMING]
        with self._write_lock:
            self._upcoming = value
            self.publish_counts['upcoming'] += 1
        logger.debug(f"Published upcoming matches ({len(value)})")

    def publish_results(self, results: Iterable[MatchResult]):
        value = tuple(results)
        if len(value) > MAX_RESULTS:
            logger.debug(f"Truncating {len(value)} results to {MAX_RESULTS}")
            value = value[:MAX_RESULTS]
        with self._write_lock:
            self._results = value
            self.publish_counts['results'] += 1
        logger.debug(f"Published results ({len(value)})")

    def publish_live(self, live: LiveMatchState):
        if live is None:
            raise ValueError('use clear_live() to remove the live match')
        with self._write_lock:
            self._live = live
            self.publish_counts['live'] += 1
        logger.debug(f"Published live match vs {live.opponent} ({live.current_map_score})")

    def clear_live(self) -> bool:
        """Remove the live match. Returns True if one was published."""
        with self._write_lock:
            had_live = self._live is not None
            self._live = None
        if had_live:
            logger.info('Live match cleared')
        return had_live
