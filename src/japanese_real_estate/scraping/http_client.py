"""
HTTP client for the Japanese Real Estate harvester.

This module provides the page fetching used by both crawl modes. Requests
are made sequentially through a shared requests.Session whose adapter retries
a bounded number of times on transient server errors and timeouts. Every
request carries a user agent picked at random from a configured pool.

Fetch functions never raise. They return the page body together with a
status dictionary, and classify failures so that the crawl controllers can
decide whether to skip an item or stop the run:

    - connection_refused: the server actively refused the connection
      (treated by the listing crawl as a sign of blocking)
    - connection_error: DNS failures, resets and other connection issues
    - timeout_error: connect or read timeout
    - request_error: any other requests failure
    - an integer HTTP status for 4xx/5xx responses

Author: Leonardo Pacciani-Mori
License: MIT
"""

import errno
import random
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from japanese_real_estate.config.settings import (
    HTTP_TIMEOUT_SECONDS,
    HTTP_MAX_RETRIES,
    HTTP_BACKOFF_FACTOR,
    HTTP_RETRY_STATUSES,
    SCRAPING_HEADERS,
    USER_AGENTS,
)
from japanese_real_estate.config.logging_config import get_logger

logger = get_logger(__name__)

# Status values used in the status dictionary for non-HTTP failures.
STATUS_CONNECTION_REFUSED = "connection_refused"
STATUS_CONNECTION_ERROR = "connection_error"
STATUS_TIMEOUT_ERROR = "timeout_error"
STATUS_REQUEST_ERROR = "request_error"

FetchResult = Tuple[Optional[str], Dict[str, Any]]


class UserAgentPool:
    """
    Random user-agent source.

    Attributes:
        user_agents: The candidate user-agent strings.
    """

    def __init__(
        self,
        user_agents: Sequence[str] = USER_AGENTS,
        rng: Optional[random.Random] = None
    ):
        if not user_agents:
            raise ValueError("user_agents must contain at least one entry")
        self.user_agents = list(user_agents)
        self._rng = rng or random.Random()

    def choose(self) -> str:
        """Return one user agent, uniformly at random."""
        return self._rng.choice(self.user_agents)


def build_session(
    max_retries: int = HTTP_MAX_RETRIES,
    backoff_factor: float = HTTP_BACKOFF_FACTOR,
    retry_statuses: Iterable[int] = HTTP_RETRY_STATUSES,
) -> requests.Session:
    """
    Create a requests session with the harvester's headers and retry policy.

    Retries apply to read timeouts and to the configured server-error
    statuses only. Connection errors are not retried, so a refused
    connection reaches the caller on the first attempt.

    Args:
        max_retries: Maximum number of retries per request.
        backoff_factor: urllib3 exponential backoff factor between retries.
        retry_statuses: HTTP statuses that trigger a retry.

    Returns:
        requests.Session: A session with the retrying adapter mounted for
            http:// and https://.

    Example:
        >>> session = build_session(max_retries=1)
        >>> content, status = get_single_url("https://suumo.jp/", session)
    """
    retry = Retry(
        total=max_retries,
        connect=0,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=tuple(retry_statuses),
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)

    session = requests.Session()
    session.headers.update(SCRAPING_HEADERS)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def is_connection_refused(error: BaseException) -> bool:
    """
    Check whether an exception chain contains a refused connection.

    requests wraps the socket error several times (ConnectionError ->
    MaxRetryError -> NewConnectionError -> ConnectionRefusedError), so the
    whole chain is walked: causes, contexts, urllib3 "reason" attributes and
    exception arguments.

    Args:
        error: The exception raised by the transport.

    Returns:
        bool: True if any exception in the chain is a connection refusal.
    """
    seen = set()
    stack = [error]
    while stack:
        exc = stack.pop()
        if exc is None or id(exc) in seen:
            continue
        seen.add(id(exc))

        if isinstance(exc, ConnectionRefusedError):
            return True
        if getattr(exc, "errno", None) == errno.ECONNREFUSED:
            return True
        message = str(exc).lower()
        if "connection refused" in message or "econnrefused" in message:
            return True

        stack.append(exc.__cause__)
        stack.append(exc.__context__)
        reason = getattr(exc, "reason", None)
        if isinstance(reason, BaseException):
            stack.append(reason)
        stack.extend(arg for arg in exc.args if isinstance(arg, BaseException))

    return False


def _decode_response(response: requests.Response) -> str:
    # Without a charset in Content-Type requests falls back to ISO-8859-1,
    # which garbles Japanese pages.
    content_type = response.headers.get("Content-Type", "").lower()
    if "charset" not in content_type:
        response.encoding = response.apparent_encoding
    return response.text


def get_single_url(
    url: str,
    session: requests.Session,
    user_agent: Optional[str] = None,
    timeout: int = HTTP_TIMEOUT_SECONDS
) -> FetchResult:
    """
    Fetch a single URL with error classification.

    Args:
        url: The URL to fetch, including protocol.
        session: A session from build_session(), reused across requests
            for connection pooling.
        user_agent: User-Agent header for this request. None keeps the
            session default.
        timeout: Request timeout in seconds (applies to connect and read).

    Returns:
        Tuple containing:
            - str or None: The decoded HTML, or None if the request failed.
            - dict: Status information with keys:
              - 'status': HTTP status code or error type string
              - 'message': Human-readable status/error message

    Example:
        >>> content, status = get_single_url(url, session, pool.choose())
        >>> if content is None and status["status"] == STATUS_CONNECTION_REFUSED:
        ...     stop_crawl()
    """
    headers = {"User-Agent": user_agent} if user_agent else None

    try:
        logger.debug(f"Fetching data for url {url}")
        response = session.get(
            url,
            headers=headers,
            timeout=timeout,
            allow_redirects=True
        )

        if response.status_code >= 400:
            logger.error(f"Error {response.status_code} when fetching {url}")
            return None, {
                'status': response.status_code,
                'message': f'Error {response.status_code} when fetching URL'
            }

        content = _decode_response(response)
        logger.debug(f"Data fetched successfully for url {url}")
        return content, {
            'status': response.status_code,
            'message': 'Success'
        }

    # ConnectTimeout is both a Timeout and a ConnectionError; it is a timeout.
    except requests.exceptions.Timeout as e:
        logger.error(f"ERROR: Timeout error for {url}: {str(e)}")
        return None, {
            'status': STATUS_TIMEOUT_ERROR,
            'message': f'Timeout error: {str(e)}'
        }

    except requests.exceptions.ConnectionError as e:
        if is_connection_refused(e):
            logger.error(f"ERROR: Connection refused for {url}: {str(e)}")
            return None, {
                'status': STATUS_CONNECTION_REFUSED,
                'message': f'Connection refused: {str(e)}'
            }
        logger.error(f"ERROR: Connection issue for {url}: {str(e)}")
        return None, {
            'status': STATUS_CONNECTION_ERROR,
            'message': f'Connection error: {str(e)}'
        }

    except requests.exceptions.RequestException as e:
        logger.error(f"ERROR: Request failed for {url}: {str(e)}")
        return None, {
            'status': STATUS_REQUEST_ERROR,
            'message': f'Request error: {str(e)}'
        }


class HttpFetcher:
    """
    Session-bound fetcher used by the crawlers.

    Bundles a session, a user-agent pool and a timeout so that crawlers
    depend on a single fetch(url) call, which tests replace with a fake.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        user_agents: Optional[UserAgentPool] = None,
        timeout: int = HTTP_TIMEOUT_SECONDS
    ):
        self.session = session or build_session()
        self.user_agents = user_agents or UserAgentPool()
        self.timeout = timeout

    def fetch(self, url: str) -> FetchResult:
        """Fetch url with a freshly chosen user agent; see get_single_url()."""
        return get_single_url(url, self.session, self.user_agents.choose(), self.timeout)

    def close(self) -> None:
        self.session.close()
