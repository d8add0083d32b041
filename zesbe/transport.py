"""Streaming chat-completion transport.

One ``TransportClient.call()`` is one POST to ``<base_url>/chat/completions``
with ``stream: true``. The server-sent event stream is accumulated and the
full text is returned once the stream ends.
"""

import json
import logging
import threading
import time

import httpx

from .providers import USER_AGENT, Provider
from .report import Cancelled, HTTPError, NetworkError, StreamParseError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0  # overall deadline for one streamed request
CONNECT_TIMEOUT = 15.0
KEEPALIVE_EXPIRY = 90.0
MAX_CONNECTIONS = 10

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


class StreamAccumulator:
    """Collects ``choices[0].delta.content`` from SSE lines.

    Lines that are not ``data:`` lines, or whose payload is not valid JSON,
    are skipped.
    """

    def __init__(self):
        self.parts: list[str] = []
        self.finish_reason: str | None = None
        self.total_tokens = 0
        self.done = False

    def feed(self, line: str) -> bool:
        """Consume one line. Returns False once the ``[DONE]`` sentinel is seen."""
        line = line.strip()
        if not line or not line.startswith(_DATA_PREFIX):
            return True
        data = line[len(_DATA_PREFIX) :].strip()
        if data == _DONE:
            self.done = True
            return False
        try:
            envelope = json.loads(data)
        except json.JSONDecodeError:
            return True
        if not isinstance(envelope, dict):
            return True

        usage = envelope.get("usage")
        if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
            self.total_tokens = usage["total_tokens"]

        choices = envelope.get("choices")
        if not isinstance(choices, list) or not choices:
            return True
        choice = choices[0]
        if not isinstance(choice, dict):
            return True
        if choice.get("finish_reason"):
            self.finish_reason = choice["finish_reason"]
        delta = choice.get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str) and content:
                self.parts.append(content)
        return True

    @property
    def text(self) -> str:
        return "".join(self.parts)


def decode_error_body(status: int, body: str) -> HTTPError:
    """Build an HTTPError, preferring a structured ``{error: {message}}`` body."""
    message = None
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            message = err["message"]
        elif isinstance(err, str):
            message = err
    return HTTPError(status, body, message)


def _is_refused(exc: BaseException) -> bool:
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, ConnectionRefusedError) or "refused" in str(exc).lower():
            return True
        exc = exc.__cause__ or exc.__context__
    return False


class TransportClient:
    """Pooled streaming HTTP client for one provider/model pair."""

    def __init__(
        self,
        provider: Provider,
        api_key: str | None,
        *,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int | None = None,
        temperature: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.model = model or provider.model
        self.base_url = (base_url or provider.base_url).rstrip("/")
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.last_finish_reason: str | None = None
        self.last_usage_tokens = 0
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout)),
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_CONNECTIONS,
                keepalive_expiry=KEEPALIVE_EXPIRY,
            ),
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "User-Agent": USER_AGENT,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self.provider.headers)
        return headers

    def build_body(self, messages: list[dict]) -> dict:
        body: dict = {"model": self.model, "messages": messages, "stream": True}
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body

    def call(self, messages: list[dict], cancel: threading.Event | None = None) -> str:
        """Send the conversation and return the model's complete response text.

        Raises NetworkError, HTTPError, StreamParseError or Cancelled.
        """
        acc = StreamAccumulator()
        started = False
        t0 = time.monotonic()
        deadline = t0 + self.timeout
        logger.info(
            "API request provider=%s model=%s endpoint=%s",
            self.provider.name,
            self.model,
            self.endpoint,
        )
        try:
            with self._client.stream(
                "POST", self.endpoint, json=self.build_body(messages), headers=self.headers()
            ) as resp:
                if resp.status_code != 200:
                    resp.read()
                    raise decode_error_body(resp.status_code, resp.text)
                started = True
                for line in resp.iter_lines():
                    if cancel is not None and cancel.is_set():
                        raise Cancelled("cancelled")
                    if time.monotonic() > deadline:
                        raise NetworkError(
                            f"request exceeded {self.timeout:.0f}s deadline", timeout=True
                        )
                    if not acc.feed(line):
                        break
        except httpx.TimeoutException as e:
            raise NetworkError(f"request timed out: {e}", timeout=True) from e
        except httpx.ConnectError as e:
            raise NetworkError(
                f"connection failed: {e}", refused=_is_refused(e)
            ) from e
        except (httpx.RemoteProtocolError, httpx.ReadError, httpx.DecodingError) as e:
            if started:
                raise StreamParseError(f"response stream broken: {e}") from e
            raise NetworkError(f"request failed: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"request failed: {e}") from e

        elapsed = time.monotonic() - t0
        self.last_finish_reason = acc.finish_reason
        self.last_usage_tokens = acc.total_tokens
        logger.info(
            "API response provider=%s status=200 duration=%.2fs tokens=%d finish_reason=%s",
            self.provider.name,
            elapsed,
            acc.total_tokens,
            acc.finish_reason,
        )
        return acc.text

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
