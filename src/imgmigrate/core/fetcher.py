"""
Image Fetching Module

This module downloads a single image reference, following redirects by hand
under one end-to-end deadline, and classifies every failure as a timeout,
an HTTP status error or a transport error. It never touches the disk.
"""

import time
import socket
import logging
import threading
from typing import Callable, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .errors import FetchHttpError, FetchTimeout, FetchTransportError
from ..utils.validators import validate_reference


DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_USER_AGENT = 'Imgmigrate/1.0 (Image Migration; Archival Use)'
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
CHUNK_SIZE = 64 * 1024


class AssetFetcher:
    """
    Retrieves image bytes for one reference at a time.

    The session is shared by all worker threads of a migration run; pass a
    preconfigured session to substitute the transport.
    """

    def __init__(self,
                 timeout: float = DEFAULT_TIMEOUT,
                 max_redirects: int = DEFAULT_MAX_REDIRECTS,
                 session: Optional[requests.Session] = None,
                 user_agent: str = DEFAULT_USER_AGENT,
                 pool_size: int = 10,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the fetcher.

        Args:
            timeout: End-to-end budget in seconds for one fetch, redirects included
            max_redirects: Maximum number of redirect hops before giving up
            session: Optional requests session (a new one is created otherwise)
            user_agent: User-Agent header for the default session
            pool_size: Connection pool size for the default session
            clock: Monotonic clock used for the deadline
        """
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.logger = logging.getLogger(__name__)
        self._clock = clock

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
            session.headers.update({
                'User-Agent': user_agent,
                'Accept': 'image/avif,image/webp,image/*,*/*;q=0.8',
            })
        self.session = session

    def fetch(self, reference: str, timeout: Optional[float] = None) -> bytes:
        """
        Download the complete body behind a reference.

        Args:
            reference: Absolute http(s) URL
            timeout: Optional override of the end-to-end budget in seconds

        Returns:
            The response body

        Raises:
            FetchTimeout: the deadline expired
            FetchHttpError: the final response was not 2xx
            FetchTransportError: malformed URL, DNS/connection failure or redirect loop
        """
        is_valid, error = validate_reference(reference)
        if not is_valid:
            raise FetchTransportError(reference, error)

        budget = self.timeout if timeout is None else timeout
        deadline = self._clock() + budget
        url = reference

        for hop in range(self.max_redirects + 1):
            remaining = self._remaining(deadline, reference, budget)
            try:
                with self.session.get(url, timeout=remaining, allow_redirects=False, stream=True) as response:
                    location = response.headers.get('Location')
                    if response.status_code in REDIRECT_STATUSES and location:
                        url = urljoin(url, location)
                        self.logger.debug(f"Redirect {hop + 1} for {reference} -> {url}")
                        continue

                    if not 200 <= response.status_code < 300:
                        raise FetchHttpError(reference, response.status_code)

                    return self._read_body(response, deadline, reference, budget)

            except requests.exceptions.Timeout as e:
                raise FetchTimeout(reference, f"Timed out after {budget:g}s") from e

            except requests.exceptions.RequestException as e:
                # Body reads surface socket timeouts as connection errors
                if self._clock() >= deadline:
                    raise FetchTimeout(reference, f"Timed out after {budget:g}s") from e
                raise FetchTransportError(reference, str(e)) from e

        raise FetchTransportError(reference, f"Too many redirects (more than {self.max_redirects})")

    def _read_body(self, response: requests.Response, deadline: float, reference: str, budget: float) -> bytes:
        """
        Read the whole body before the deadline.

        A single chunk read can block across many socket reads, each with a
        fresh socket timeout, so a watchdog shuts the connection down when the
        deadline passes and the partial body is discarded.
        """
        expired = threading.Event()

        def expire():
            expired.set()
            _shutdown_connection(response)

        watchdog = threading.Timer(self._remaining(deadline, reference, budget), expire)
        watchdog.daemon = True
        watchdog.start()
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    chunks.append(chunk)
                self._remaining(deadline, reference, budget)
        except Exception as e:
            if expired.is_set():
                raise FetchTimeout(reference, f"Timed out after {budget:g}s") from e
            raise
        finally:
            watchdog.cancel()

        # A body without Content-Length just ends early when the socket is shut down
        if expired.is_set():
            raise FetchTimeout(reference, f"Timed out after {budget:g}s")
        return b''.join(chunks)

    def _remaining(self, deadline: float, reference: str, budget: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise FetchTimeout(reference, f"Timed out after {budget:g}s")
        return remaining

    def close(self):
        """Close the HTTP session."""
        self.session.close()
        self.logger.debug("Fetcher session closed")


def _shutdown_connection(response: requests.Response) -> None:
    """Wake a read blocked on the response's socket by shutting the socket down."""
    raw = response.raw
    fp = getattr(getattr(raw, '_fp', None), 'fp', None)
    sock = getattr(getattr(fp, 'raw', None), '_sock', None)
    if sock is None:
        sock = getattr(getattr(raw, '_connection', None), 'sock', None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Already closed by the peer
        pass
