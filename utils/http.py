"""HTTP utilities for the visa data refresh tools.

Provides reusable pieces for:
- Retry/backoff policy for an explicit, bounded retry loop
- Session management with connection pooling
- Minimum spacing between consecutive requests to the lookup API
"""

import time
from typing import Callable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry as URLRetry


class RetryStrategy:
    """Defines retry behavior for lookup requests."""

    def __init__(self, max_retries: int = 3, backoff_factor: float = 2.0,
                 base_delay: float = 1.0,
                 status_forcelist: Optional[List[int]] = None):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts (default: 3)
            backoff_factor: Exponential backoff multiplier (default: 2.0)
            base_delay: Delay in seconds that the multiplier is applied to;
                        with the defaults retries wait 2s, 4s, 8s
            status_forcelist: Server error codes worth retrying
                            (default: [500, 502, 503, 504]). 429 is always
                            retried and handled separately by the caller.
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.base_delay = base_delay
        self.status_forcelist = status_forcelist or [500, 502, 503, 504]

    @property
    def attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number *attempt* (1-based)."""
        if attempt <= 0:
            return 0.0
        return self.base_delay * (self.backoff_factor ** attempt)

    def should_retry_status(self, status_code: int) -> bool:
        return status_code == 429 or status_code in self.status_forcelist

    def get_retry_object(self) -> URLRetry:
        """Get the urllib3 Retry object mounted on the session adapter.

        Transport-level retries are switched off: the lookup client runs its
        own loop so a throttled endpoint can be told apart from a network
        failure.

        Returns:
            urllib3.util.retry.Retry object
        """
        return URLRetry(
            total=0,
            connect=0,
            read=0,
            status=0,
            raise_on_status=False,
            allowed_methods=["GET", "HEAD", "POST"],
        )


class SessionManager:
    """Manages HTTP sessions with connection pooling."""

    def __init__(self, retry_strategy: Optional[RetryStrategy] = None,
                 pool_connections: int = 2, pool_maxsize: int = 4,
                 headers: Optional[dict] = None):
        """Initialize session manager.

        Args:
            retry_strategy: RetryStrategy to use (default: standard strategy)
            pool_connections: Number of connection pools to cache
            pool_maxsize: Maximum number of connections per pool
            headers: Default headers sent with every request
        """
        self.retry_strategy = retry_strategy or RetryStrategy()
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self.headers = dict(headers or {})
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session with pooling.

        Returns:
            requests.Session object
        """
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(self.headers)

            adapter = HTTPAdapter(
                max_retries=self.retry_strategy.get_retry_object(),
                pool_connections=self.pool_connections,
                pool_maxsize=self.pool_maxsize
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        return self._session

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class RequestThrottle:
    """Enforces a minimum delay between consecutive lookup requests.

    The delay is the rate-limit contract with the remote service, so it is
    applied before every request except the first one of a run.
    """

    def __init__(self, delay: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self._delay = delay
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None

    @property
    def delay(self) -> float:
        return self._delay

    def wait(self) -> float:
        """Block until ``delay`` seconds have passed since the last request,
        then mark the current time. Returns the seconds slept."""
        slept = 0.0
        if self._last_request is not None:
            wait_time = self._delay - (self._clock() - self._last_request)
            if wait_time > 0:
                self._sleep(wait_time)
                slept = wait_time
        self._last_request = self._clock()
        return slept
