"""Trello REST client: rate-limited, OAuth-header authenticated, never retried."""

import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import BoardParseError, TrelloAction, TrelloBoardSummary
from rate_limiter import RateLimiter

logger = logging.getLogger('trello_markdown_backup.client')

API_BASE_URL = 'https://api.trello.com/1'
BACKUP_BASE_URL = 'https://trello.com/b'

# Trello caps list endpoints at 1000 items per page
PAGE_SIZE = 1000


class TrelloClient:
    """Trello REST API client sharing a single RateLimiter across threads."""

    def __init__(
        self,
        api_key: str,
        api_token: str,
        rate_limiter: RateLimiter,
        timeout: int = 60,
        verify_ssl: bool = True,
        pool_size: int = 16
    ):
        """
        Initialize the client with OAuth credentials.

        Args:
            api_key: Trello API key (oauth_consumer_key)
            api_token: Trello user token (oauth_token)
            rate_limiter: Limiter every request passes through
            timeout: HTTP request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            pool_size: Connection pool size, should cover the worker threads
        """
        if not api_key or not api_token:
            raise ValueError("Trello client requires api_key and api_token")

        self.rate_limiter = rate_limiter
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['Authorization'] = (
            f'OAuth oauth_consumer_key="{api_key}", oauth_token="{api_token}"'
        )

        self.session.verify = verify_ssl
        if not verify_ssl:
            logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        # Failures surface to the caller as-is; no transparent retries
        adapter = HTTPAdapter(
            max_retries=Retry(total=0, raise_on_status=False),
            pool_connections=pool_size,
            pool_maxsize=pool_size
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.debug(f"Client configured with timeout={timeout}s, pool_size={pool_size}")

    def _make_request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        stream: bool = False
    ) -> requests.Response:
        """
        Issue a GET after waiting for the rate limiter.

        Args:
            url: Full request URL
            params: Query parameters
            stream: Leave the body unread for streaming downloads

        Returns:
            Response object

        Raises:
            requests.exceptions.HTTPError: For non-success status codes
            requests.exceptions.RequestException: For other request errors
        """
        self.rate_limiter.acquire()

        start_time = time.time()
        logger.debug(f"API Request: GET {url}")

        try:
            response = self.session.request('GET', url, params=params, timeout=self.timeout, stream=stream)
            logger.debug(f"API Response: {response.status_code} {url} ({time.time() - start_time:.3f}s)")
            response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"HTTP Error {status_code}: GET {url}")
            if e.response is not None and not stream:
                logger.debug(f"Error response: {e.response.text[:500]}")
            raise

        except requests.exceptions.Timeout:
            logger.error(f"Request timeout after {self.timeout}s: GET {url}")
            raise

        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: GET {url} - {str(e)}")
            raise

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._make_request(url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise BoardParseError(f"Malformed JSON from {url}: {e}")

    def get_boards(self) -> List[TrelloBoardSummary]:
        """
        List every board the authenticated member can see.

        Returns:
            Board summaries in API order

        Raises:
            BoardParseError: If a board is missing its name or short link
        """
        data = self._get_json(
            f'{API_BASE_URL}/members/me/boards',
            params={'fields': 'name,shortLink,id', 'limit': PAGE_SIZE}
        )
        if not isinstance(data, list):
            raise BoardParseError("Expected a list of boards")

        boards = [TrelloBoardSummary.from_dict(item) for item in data]
        for board in boards:
            if not board.required_fields_filled():
                raise BoardParseError(f"Board {board.id or '<unknown>'} is missing required properties")

        logger.info(f"Found {len(boards)} boards")
        return boards

    def get_board_backup(self, short_link: str) -> bytes:
        """
        Download the full JSON export of a board.

        The payload is returned unparsed so it can be saved before decoding.

        Args:
            short_link: Board short link code

        Returns:
            Raw payload bytes
        """
        response = self._make_request(f'{BACKUP_BASE_URL}/{short_link}.json')
        raw = response.content
        logger.debug(f"Downloaded backup of board {short_link} ({len(raw)} bytes)")
        return raw

    def get_board_comments(self, board_id: str) -> List[TrelloAction]:
        """
        Fetch the full comment history of a board.

        The API returns newest first; each following page asks for comments
        strictly older than the oldest one already seen.

        Args:
            board_id: Board identifier

        Returns:
            Comment actions, newest first
        """
        comments: List[TrelloAction] = []
        params: Dict[str, Any] = {'filter': 'commentCard', 'limit': PAGE_SIZE}

        while True:
            page = self._get_json(f'{API_BASE_URL}/boards/{board_id}/actions', params=dict(params))
            if not isinstance(page, list):
                raise BoardParseError(f"Expected a list of actions for board {board_id}")
            if not page:
                break

            actions = [TrelloAction.from_dict(item) for item in page]
            comments.extend(actions)
            params['before'] = min(action.date for action in actions)

        logger.debug(f"Fetched {len(comments)} comments for board {board_id}")
        return comments

    def download_attachment(self, url: str, destination: Union[str, Path]) -> int:
        """
        Stream an attachment to disk.

        Args:
            url: Attachment source URL
            destination: File to write

        Returns:
            Number of bytes written
        """
        response = self._make_request(url, stream=True)
        written = 0
        try:
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        finally:
            response.close()

        logger.debug(f"Downloaded {written} bytes: {url}")
        return written

    @classmethod
    def from_config(cls, config: Dict[str, Any], rate_limiter: RateLimiter) -> 'TrelloClient':
        """
        Initialize Trello client from configuration dictionary.

        Args:
            config: Configuration dictionary with trello and concurrency settings
            rate_limiter: Shared limiter

        Returns:
            TrelloClient instance
        """
        trello_config = config.get('trello', {})
        concurrency_config = config.get('concurrency', {})
        pool_size = concurrency_config.get('board_workers', 4) * (concurrency_config.get('card_workers', 8) + 2)

        return cls(
            api_key=trello_config.get('api_key'),
            api_token=trello_config.get('api_token'),
            rate_limiter=rate_limiter,
            timeout=trello_config.get('request_timeout', 60),
            verify_ssl=trello_config.get('verify_ssl', True),
            pool_size=pool_size
        )
