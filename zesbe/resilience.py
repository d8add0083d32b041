"""Rate limiting and retry around the streaming transport."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .providers import Provider
from .report import Cancelled, HTTPError, NetworkError, TransportError
from .transport import DEFAULT_TIMEOUT, TransportClient

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_wait: float = 1.0
    max_wait: float = 30.0
    multiplier: float = 2.0

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""
        return min(self.initial_wait * self.multiplier**attempt, self.max_wait)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, HTTPError):
        return exc.status in RETRYABLE_STATUS
    if isinstance(exc, NetworkError):
        return exc.timeout or exc.refused
    return False


def _pause(delay: float, cancel: threading.Event | None, sleep: Callable[[float], None]):
    if delay <= 0:
        if cancel is not None and cancel.is_set():
            raise Cancelled("cancelled")
        return
    if cancel is None:
        sleep(delay)
    elif cancel.wait(delay):
        raise Cancelled("cancelled")


class TokenBucket:
    """Classic token bucket refilled continuously at ``rate_per_minute``."""

    def __init__(
        self,
        rate_per_minute: float,
        capacity: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        self.rate = rate_per_minute / 60.0
        self.capacity = float(capacity if capacity is not None else rate_per_minute * 2)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last = now

    def try_acquire(self) -> float:
        """Take a token if one is available.

        Returns 0.0 on success, otherwise the number of seconds until the
        next token will be available.
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self.rate

    def wait(self, cancel: threading.Event | None = None) -> float:
        """Block until a token is taken. Returns the time spent waiting."""
        waited = 0.0
        while True:
            delay = self.try_acquire()
            if delay == 0.0:
                return waited
            _pause(delay, cancel, self._sleep)
            waited += delay


AttemptHook = Callable[[TransportError | None, str | None], None]


class ResilientClient:
    """Wraps a TransportClient with a token bucket and exponential backoff.

    Retries never outlive one ``call()``; the agent loop sees either the
    final text or a single error.
    """

    def __init__(
        self,
        transport: TransportClient,
        policy: RetryPolicy | None = None,
        bucket: TokenBucket | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.bucket = bucket
        self._sleep = sleep

    @property
    def provider(self) -> Provider:
        return self.transport.provider

    @property
    def model(self) -> str:
        return self.transport.model

    @property
    def last_usage_tokens(self) -> int:
        return self.transport.last_usage_tokens

    def call(
        self,
        messages: list[dict],
        cancel: threading.Event | None = None,
        on_attempt: AttemptHook | None = None,
    ) -> str:
        attempt = 0
        while True:
            if self.bucket is not None:
                waited = self.bucket.wait(cancel)
                if waited:
                    logger.debug("rate limited for %.2fs", waited)
            try:
                text = self.transport.call(messages, cancel=cancel)
            except TransportError as e:
                if on_attempt is not None:
                    on_attempt(e, None)
                if not is_retryable(e) or attempt >= self.policy.max_retries:
                    logger.error("request failed after %d attempt(s): %s", attempt + 1, e)
                    raise
                delay = self.policy.backoff(attempt)
                logger.warning(
                    "retryable error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    self.policy.max_retries + 1,
                    delay,
                    e,
                )
                _pause(delay, cancel, self._sleep)
                attempt += 1
                continue
            if on_attempt is not None:
                on_attempt(None, text)
            return text

    def close(self) -> None:
        self.transport.close()


def create_client(
    provider: Provider,
    api_key: str | None,
    *,
    model: str | None = None,
    base_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_tokens: int | None = None,
    temperature: float | None = None,
    policy: RetryPolicy | None = None,
) -> ResilientClient:
    """Build the transport + wrapper pair with the provider's rate-limit profile."""
    transport = TransportClient(
        provider,
        api_key,
        model=model,
        base_url=base_url,
        timeout=timeout,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    bucket = TokenBucket(provider.requests_per_minute, provider.bucket_capacity)
    return ResilientClient(transport, policy, bucket)
