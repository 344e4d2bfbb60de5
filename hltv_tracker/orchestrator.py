# hltv_tracker/orchestrator.py

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import psutil

from hltv_tracker.config import BROWSER_CONFIG, CACHE_CONFIG, POLL_CONFIG, READY_SELECTORS, TrackerSettings
from hltv_tracker.document_cache import DocumentCache
from hltv_tracker.models import PollState
from hltv_tracker.parsers.hltv_parser import HltvParser, is_match_today
from hltv_tracker.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def memory_usage_mb() -> float:
    """Resident memory of this process (the browser runs in child processes)."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


class Ticker:
    """Sleeps between crawl cycles; stop() wakes a pending wait immediately."""

    def __init__(self):
        self._stopped = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def wait(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns False once the ticker is stopped."""
        return not self._stopped.wait(max(seconds, 0))

    def stop(self):
        self._stopped.set()


class CrawlOrchestrator:
    """
    Decides what to crawl and how often, and publishes the results.

    Cadence depends on the state derived at the end of each cycle:
    - IDLE: no match today, nothing live. Refresh team info and match list
      at the base interval.
    - MATCH_TODAY: a match is scheduled today (or has no known date). Also
      poll the live-matches index at a short interval.
    - LIVE: the tracked team's live match is published. Re-fetch the index
      and the match page at a very short interval.

    Cycles never overlap: the next one is only scheduled after the previous
    one finished, with a delay computed from its outcome.
    """

    def __init__(self, settings: TrackerSettings, fetcher, parser=None,
                 cache: DocumentCache = None, store: SnapshotStore = None,
                 ticker: Ticker = None, poll_config: dict = None, cache_config: dict = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self.fetcher = fetcher
        self.parser = parser if parser is not None else HltvParser()
        self.cache = cache if cache is not None else DocumentCache()
        self.store = store if store is not None else SnapshotStore()
        self.ticker = ticker if ticker is not None else Ticker()
        self.poll_config = dict(POLL_CONFIG)
        self.poll_config.update(poll_config or {})
        self.cache_config = dict(CACHE_CONFIG)
        self.cache_config.update(cache_config or {})
        self._clock = clock

        # Seconds until the next cycle, per state
        self.cadence: Dict[PollState, float] = {
            PollState.IDLE: settings.crawl_interval,
            PollState.MATCH_TODAY: self.poll_config['match_today_interval'],
            PollState.LIVE: self.poll_config['live_interval'],
        }

        self.state = PollState.IDLE
        self.degraded = False
        self.cycle_count = 0
        self.skipped_cycles = 0
        self.failed_steps = 0
        self.last_cycle_at: Optional[datetime] = None
        self.last_sweep_at: Optional[datetime] = None
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # --- State derivation ---

    def has_match_today(self) -> bool:
        today = self._clock().date()
        return any(is_match_today(m, today) for m in self.store.get_upcoming())

    def derive_state(self, match_today: bool = None) -> PollState:
        if self.store.get_live() is not None:
            return PollState.LIVE
        if match_today is None:
            match_today = self.has_match_today()
        return PollState.MATCH_TODAY if match_today else PollState.IDLE

    def next_delay(self, state: PollState = None) -> float:
        if self.degraded:
            return self.cadence[PollState.IDLE]
        return self.cadence[state or self.state]

    # --- Cycle ---

    def run_cycle(self) -> PollState:
        """Run one complete crawl cycle and return the resulting state."""
        if not self._cycle_lock.acquire(blocking=False):
            self.skipped_cycles += 1
            logger.warning('Crawl cycle already in progress, skipping this tick')
            return self.state

        try:
            if self.degraded:
                logger.warning('No browser session available, crawl cycle skipped')
                return self.state

            previous = self.state
            self.cycle_count += 1
            self.last_cycle_at = self._clock()
            logger.info(f"Crawl cycle {self.cycle_count} started ({previous.name})")

            self._run_maintenance()
            self._refresh_team_info()
            self._refresh_matches()
            match_today = self.has_match_today()

            if previous in (PollState.MATCH_TODAY, PollState.LIVE):
                self._refresh_live()
            elif match_today:
                logger.info('Match scheduled today, switching to short polling')

            self.state = self.derive_state(match_today)
            if self.state != previous:
                logger.info(f"Poll state {previous.name} -> {self.state.name}")
            logger.info(f"Crawl cycle {self.cycle_count} finished (memory {memory_usage_mb():.1f} MB)")
            return self.state
        finally:
            self._cycle_lock.release()

    def _run_maintenance(self):
        now = self._clock()
        try:
            self.fetcher.restart_if_due(now)
        except Exception as e:
            self.failed_steps += 1
            logger.error(f"Scheduled browser restart failed: {e}")

        if self.last_sweep_at is None:
            self.last_sweep_at = now
        elif now - self.last_sweep_at >= timedelta(seconds=self.poll_config['sweep_interval']):
            self.cache.sweep()
            self.last_sweep_at = now

    def _cached_fetch(self, url: str, category: str):
        ready = READY_SELECTORS[category]
        return self.cache.get_or_fetch(
            url, self.cache_config[category], lambda: self.fetcher.fetch(url, ready)
        )

    def _refresh_team_info(self) -> bool:
        url = self.settings.team_info_url
        logger.info(f"Refreshing team info: {url}")
        try:
            doc = self._cached_fetch(url, 'team_info')
            if doc is None:
                logger.error(f"Failed to fetch team info from {url}, keeping last roster")
                return False
            self.store.publish_roster(self.parser.extract_roster(doc))
            return True
        except Exception as e:
            self.failed_steps += 1
            logger.error(f"Error refreshing team info: {e}")
            return False

    def _refresh_matches(self) -> bool:
        url = self.settings.team_matches_url
        logger.info(f"Refreshing matches: {url}")
        try:
            doc = self._cached_fetch(url, 'matches')
            if doc is None:
                logger.error(f"Failed to fetch matches from {url}, keeping last matches and results")
                return False
            upcoming = self.parser.extract_upcoming(doc)
            results = self.parser.extract_results(doc)
            self.store.publish_upcoming(upcoming)
            self.store.publish_results(results)
            return True
        except Exception as e:
            self.failed_steps += 1
            logger.error(f"Error refreshing matches: {e}")
            return False

    def _refresh_live(self) -> bool:
        """Check the live index and publish or clear the live match."""
        url = self.settings.live_index_url
        logger.info(f"Checking live matches: {url}")
        try:
            index = self.fetcher.fetch(url, READY_SELECTORS['live_index'],
                                       timeout_ms=BROWSER_CONFIG['index_load_timeout'])
            if index is None:
                logger.error('Failed to fetch live matches index, keeping live state')
                return False

            ref = self.parser.extract_live(index, self.settings.team_id)
            if ref is None:
                self.store.clear_live()
                logger.info(f"No live match for {self.settings.team_name}")
                return True

            if not ref.match_link:
                logger.warning(f"Live match vs {ref.opponent} has no match link, keeping live state")
                return False

            detail = self.fetcher.fetch(ref.match_link, READY_SELECTORS['match_detail'])
            if detail is None:
                logger.error(f"Failed to fetch match page {ref.match_link}, keeping live state")
                return False

            live = self.parser.extract_live_detail(detail, ref)
            self.store.publish_live(live)
            logger.info(f"Live match updated: vs {live.opponent} {live.current_map_score} "
                        f"(maps {live.maps_won}, {live.format})")
            return True
        except Exception as e:
            self.failed_steps += 1
            logger.error(f"Error checking live match: {e}")
            return False

    # --- Loop ---

    def boot(self) -> bool:
        """Acquire the browser session; degrade to no-op cycles if that fails."""
        attempts = self.poll_config['startup_attempts']
        if self.fetcher.start(attempts):
            self.degraded = False
            return True
        self.degraded = True
        logger.error('Browser unavailable at startup; crawler degraded, snapshots will stay empty')
        return False

    def run_forever(self):
        """Self-rescheduling crawl loop. Owns the browser session until it returns."""
        logger.info(f"Crawl loop started for {self.settings.team_name} (team {self.settings.team_id})")
        try:
            self.boot()
            while not self.ticker.stopped:
                try:
                    state = self.run_cycle()
                except Exception as e:
                    logger.error(f"Crawl cycle failed: {e}", exc_info=True)
                    state = self.state
                delay = self.next_delay(state)
                logger.info(f"Next crawl in {delay / 60:.1f} minutes ({state.name})")
                if not self.ticker.wait(delay):
                    break
        finally:
            self.fetcher.close()
            logger.info('Crawl loop stopped')

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self.run_forever, name='crawl-orchestrator', daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 60):
        """Stop the loop and wait for the browser session to be released."""
        self.ticker.stop()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Crawl loop did not stop within {timeout}s")

    # --- Reporting ---

    def get_status_report(self) -> str:
        """Get human-readable status report"""
        snapshot = self.store.snapshot()
        live = snapshot['live']
        last_cycle = self.last_cycle_at.strftime('%Y-%m-%d %H:%M:%S') if self.last_cycle_at else 'never'
        failures = dict(getattr(self.fetcher, 'failure_counts', {}) or {})
        failure_text = ', '.join(f"{k}={v}" for k, v in sorted(failures.items())) or 'none'
        counts = self.store.publish_counts
        publishes = ', '.join(f"{k}={v}" for k, v in counts.items())

        if live is not None:
            live_text = f"vs {live.opponent} {live.current_map_score} (maps {live.maps_won})"
        else:
            live_text = 'none'

        return f"""
========================================
CRAWLER STATUS REPORT
========================================
Team: {self.settings.team_name} ({self.settings.team_id})
State: {'DEGRADED' if self.degraded else self.state.name}
Cycles: {self.cycle_count} (last: {last_cycle}, skipped: {self.skipped_cycles})
Next delay: {self.next_delay() / 60:.1f} minutes

Roster: {len(snapshot['roster'])} players
Upcoming matches: {len(snapshot['upcoming'])}
Recent results: {len(snapshot['results'])}
Live match: {live_text}
Publishes: {publishes}

Cache: {len(self.cache)} documents ({self.cache.hits} hits, {self.cache.misses} misses)
Fetch failures: {failure_text}
Memory: {memory_usage_mb():.1f} MB
========================================
"""
