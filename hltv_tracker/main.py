# hltv_tracker/main.py

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from hltv_tracker.browser_fetcher import BrowserFetcher
from hltv_tracker.commands import CommandHandlers, CommandRouter
from hltv_tracker.config import TrackerSettings, load_settings
from hltv_tracker.errors import ConfigError, TelegramError
from hltv_tracker.models import PollState
from hltv_tracker.orchestrator import CrawlOrchestrator
from hltv_tracker.telegram_client import TelegramClient

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO', log_file: Path = None):
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=handlers,
    )


class TeamTracker:
    """Wires the crawler, the snapshot store and the chat bot together."""

    def __init__(self, settings: TrackerSettings):
        self.settings = settings
        self.fetcher = BrowserFetcher(executable_path=settings.browser_executable_path)
        self.orchestrator = CrawlOrchestrator(settings, self.fetcher)
        self.handlers = CommandHandlers(
            self.orchestrator.store,
            settings.team_name,
            status_fn=self.orchestrator.get_status_report,
        )
        self.router = CommandRouter(self.handlers)
        self.bot = None
        self._stopped = threading.Event()

    def shutdown(self, *_):
        if self._stopped.is_set():
            return
        logger.info('Shutdown requested')
        self._stopped.set()
        if self.bot is not None:
            self.bot.stop()

    def run(self, with_bot: bool = True):
        """Start the crawl loop and serve chat commands until interrupted."""
        if with_bot:
            self.bot = TelegramClient(self.settings.telegram_token, self.router)

        signal.signal(signal.SIGTERM, self.shutdown)
        self.orchestrator.start()
        try:
            if self.bot is not None:
                self.bot.poll_forever()
            else:
                while not self._stopped.wait(1):
                    pass
        except KeyboardInterrupt:
            logger.warning('Interrupted by user')
            self.shutdown()
        finally:
            self.orchestrator.stop()

        logger.info('Tracker stopped')

    def run_once(self, check_live: bool = False):
        """Run a single crawl cycle in the foreground and print what was found."""
        store = self.orchestrator.store
        try:
            if not self.orchestrator.boot():
                print('Browser session could not be started.')
                return
            self.orchestrator.run_cycle()
            if check_live and self.orchestrator.state == PollState.IDLE:
                # Force a live check regardless of the schedule
                self.orchestrator.state = PollState.MATCH_TODAY
                self.orchestrator.run_cycle()
        finally:
            self.fetcher.close()

        print(self.orchestrator.get_status_report())
        for reply_fn in (self.handlers.team, self.handlers.matches, self.handlers.results, self.handlers.live):
            for reply in reply_fn():
                if reply.text:
                    print(reply.text)
                    print()
        if not store.get_roster():
            print('No roster data was collected.')


def main():
    parser = argparse.ArgumentParser(description='HLTV team tracker and Telegram bot')
    parser.add_argument('command', choices=['run', 'once', 'status'],
                        help='run=crawl loop + bot, once=single crawl cycle, status=show configuration')
    parser.add_argument('--no-bot', action='store_true',
                        help='Run the crawl loop without the Telegram bot')
    parser.add_argument('--check-live', action='store_true',
                        help='With "once": also query the live-matches index')
    parser.add_argument('--env-file', default=None,
                        help='Path to a .env file (default: project root)')
    parser.add_argument('--log-file', default='tracker.log',
                        help='Log file path (empty string to disable)')

    args = parser.parse_args()

    try:
        settings = load_settings(args.env_file)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings.log_level, Path(args.log_file) if args.log_file else None)

    if args.command == 'status':
        print(f"Team: {settings.team_name} ({settings.team_id}/{settings.team_slug})")
        print(f"Base interval: {settings.crawl_interval / 60:.1f} minutes")
        print(f"Browser: {settings.browser_executable_path or 'Playwright bundled Chromium'}")
        print(f"Telegram bot: {'configured' if settings.telegram_token else 'not configured'}")
        return

    tracker = TeamTracker(settings)
    if args.command == 'once':
        tracker.run_once(check_live=args.check_live)
        return

    try:
        tracker.run(with_bot=not args.no_bot)
    except TelegramError as e:
        logger.error(f"Cannot start the bot: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
