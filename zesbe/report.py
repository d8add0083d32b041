"""Error types and per-client request statistics."""

import threading
import time
from dataclasses import dataclass, field


class AgentError(Exception):
    """Raised by the agent loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (unknown provider, missing API key, etc.)."""


class TransportError(AgentError):
    """A single chat-completion request failed."""


class NetworkError(TransportError):
    """The request never produced an HTTP response, or the deadline passed."""

    def __init__(self, message: str, *, timeout: bool = False, refused: bool = False):
        super().__init__(message)
        self.timeout = timeout
        self.refused = refused


class HTTPError(TransportError):
    """The provider answered with a non-200 status."""

    def __init__(self, status: int, body: str, message: str | None = None):
        self.status = status
        self.body = body
        self.message = message if message is not None else body
        super().__init__(f"API error ({status}): {self.message}")


class StreamParseError(TransportError):
    """The response stream broke off or could not be decoded."""


class Cancelled(AgentError):
    """Raised when the caller aborts the turn in flight."""


class AgentBusyError(AgentError):
    """Raised when a turn is started while another one is still running."""


@dataclass
class StatsSnapshot:
    total_requests: int = 0
    total_errors: int = 0
    total_tokens: int = 0
    last_request_time: float | None = None
    tool_stats: dict[str, dict[str, int]] = field(default_factory=dict)


class ClientStats:
    """Request and tool counters shared between the loop thread and the UI.

    Only the agent loop writes; readers go through snapshot().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.total_errors = 0
        self.total_tokens = 0
        self.last_request_time: float | None = None
        self.tool_stats: dict[str, dict[str, int]] = {}
        self.total_tool_time = 0.0

    def record_request(self, *, tokens: int = 0, error: bool = False) -> None:
        with self._lock:
            self.total_requests += 1
            self.total_tokens += tokens
            if error:
                self.total_errors += 1
            self.last_request_time = time.time()

    def record_tool(self, name: str, succeeded: bool, duration: float) -> None:
        with self._lock:
            self.total_tool_time += duration
            stats = self.tool_stats.setdefault(name, {"succeeded": 0, "failed": 0})
            if succeeded:
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                total_requests=self.total_requests,
                total_errors=self.total_errors,
                total_tokens=self.total_tokens,
                last_request_time=self.last_request_time,
                tool_stats={k: dict(v) for k, v in self.tool_stats.items()},
            )
