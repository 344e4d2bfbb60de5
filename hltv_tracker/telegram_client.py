# hltv_tracker/telegram_client.py

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import requests

from hltv_tracker.commands import CommandRouter, Reply
from hltv_tracker.config import TELEGRAM_CONFIG
from hltv_tracker.errors import TelegramError

logger = logging.getLogger(__name__)

# Telegram albums hold 2 to 10 items
MAX_MEDIA_GROUP = 10


class TelegramClient:
    """
    Long-polling Telegram transport.

    Incoming text messages are dispatched to the command router on a worker
    pool, one task per message, so a slow reply never blocks polling.
    """

    def __init__(self, token: str, router: CommandRouter, config: dict = None,
                 session: requests.Session = None, sleep: Callable[[float], None] = time.sleep):
        if not token:
            raise TelegramError('TELEGRAM_BOT_TOKEN is not set')
        self.token = token
        self.router = router
        self.config = dict(TELEGRAM_CONFIG)
        self.config.update(config or {})
        self.session = session or requests.Session()
        self._sleep = sleep
        self._stop = threading.Event()
        self.offset = 0
        self.last_error_type = None  # 'http', 'timeout', 'connection', 'api'

    def _url(self, method: str) -> str:
        return f"{self.config['api_base']}/bot{self.token}/{method}"

    def _backoff(self, attempt: int):
        delay = self.config['retry_delay_base'] * (attempt + 1)
        self._sleep(min(delay, self.config['retry_delay_max']))

    def call(self, method: str, payload: dict = None, timeout: float = None):
        """Call a Bot API method. Returns its result, or None on failure."""
        self.last_error_type = None
        timeout = timeout or self.config['request_timeout']
        max_retries = self.config['max_retries']

        for attempt in range(max_retries):
            try:
                response = self.session.post(self._url(method), json=payload or {}, timeout=timeout)
            except requests.Timeout:
                self.last_error_type = 'timeout'
                logger.warning(f"Timeout calling {method} (attempt {attempt + 1}/{max_retries})")
                self._backoff(attempt)
                continue
            except requests.ConnectionError as e:
                self.last_error_type = 'connection'
                logger.warning(f"Connection error calling {method}: {e} (attempt {attempt + 1}/{max_retries})")
                self._backoff(attempt)
                continue
            except requests.RequestException as e:
                self.last_error_type = 'connection'
                logger.error(f"Request failed for {method}: {e}")
                return None

            if response.status_code == 429:
                self.last_error_type = 'http'
                wait_time = self._retry_after(response)
                logger.warning(f"Rate limited by Telegram (429). Waiting {wait_time} seconds...")
                self._sleep(wait_time)
                continue

            try:
                data = response.json()
            except ValueError:
                self.last_error_type = 'http'
                logger.error(f"HTTP {response.status_code} from {method} with non-JSON body")
                if response.status_code >= 500:
                    self._backoff(attempt)
                    continue
                return None

            if not data.get('ok'):
                self.last_error_type = 'api'
                logger.error(f"Telegram {method} failed: {data.get('description', response.status_code)}")
                if response.status_code >= 500:
                    self._backoff(attempt)
                    continue
                return None

            return data.get('result')

        logger.error(f"Giving up on {method} after {max_retries} attempts")
        return None

    @staticmethod
    def _retry_after(response) -> int:
        try:
            retry_after = response.json().get('parameters', {}).get('retry_after')
        except ValueError:
            retry_after = None
        if retry_after is None:
            retry_after = response.headers.get('Retry-After', 5)
        return int(retry_after) if str(retry_after).isdigit() else 5

    # --- Outgoing ---

    def send_message(self, chat_id: int, text: str, disable_preview: bool = False) -> bool:
        result = self.call('sendMessage', {
            'chat_id': chat_id,
            'text': text,
            'disable_web_page_preview': disable_preview,
        })
        if result is not None:
            logger.info(f"Message sent to chat {chat_id}")
        return result is not None

    def send_photo(self, chat_id: int, url: str, caption: str = '') -> bool:
        result = self.call('sendPhoto', {'chat_id': chat_id, 'photo': url, 'caption': caption})
        return result is not None

    def send_media_group(self, chat_id: int, photos) -> bool:
        photos = list(photos)[:MAX_MEDIA_GROUP]
        if len(photos) == 1:
            # Albums need at least two items
            url, caption = photos[0]
            return self.send_photo(chat_id, url, caption)
        media = [
            {'type': 'photo', 'media': url, 'caption': caption}
            for url, caption in photos
        ]
        result = self.call('sendMediaGroup', {'chat_id': chat_id, 'media': media})
        return result is not None

    def send_reply(self, chat_id: int, reply: Reply) -> bool:
        if reply.photos:
            if self.send_media_group(chat_id, reply.photos):
                logger.info(f"Sent {len(reply.photos)} photos to chat {chat_id}")
                return True
            return self.send_message(chat_id, 'Could not send the player photos, see the lineup above.')
        return self.send_message(chat_id, reply.text, reply.disable_preview)

    # --- Incoming ---

    def get_updates(self) -> List[dict]:
        poll_timeout = self.config['poll_timeout']
        result = self.call(
            'getUpdates',
            {'offset': self.offset, 'timeout': poll_timeout, 'allowed_updates': ['message']},
            timeout=poll_timeout + 10,
        )
        updates = result or []
        if updates:
            self.offset = max(u.get('update_id', 0) for u in updates) + 1
        return updates

    def handle_update(self, update: dict):
        message = update.get('message') or {}
        text = message.get('text')
        chat_id = (message.get('chat') or {}).get('id')
        if not text or chat_id is None:
            logger.debug(f"Ignoring update without text: {update.get('update_id')}")
            return

        logger.info(f"Message received: {text!r} from chat {chat_id}")
        for reply in self.router.dispatch(text):
            self.send_reply(chat_id, reply)

    def poll_forever(self):
        """Long-poll for updates until stop() is called."""
        me = self.call('getMe')
        if me:
            logger.info(f"Bot connected as @{me.get('username')}")

        with ThreadPoolExecutor(max_workers=self.config['handler_workers'],
                                thread_name_prefix='command') as executor:
            while not self._stop.is_set():
                updates = self.get_updates()
                if not updates and self.last_error_type:
                    # Telegram unreachable; back off before polling again
                    self._stop.wait(self.config['retry_delay_max'])
                    continue
                for update in updates:
                    executor.submit(self._safe_handle, update)
        logger.info('Telegram polling stopped')

    def _safe_handle(self, update: dict):
        try:
            self.handle_update(update)
        except Exception as e:
            logger.error(f"Error handling update {update.get('update_id')}: {e}", exc_info=True)

    def stop(self):
        self._stop.set()
