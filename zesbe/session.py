"""Public library API for zesbe: Session class and Result dataclass."""

from dataclasses import dataclass, field
from pathlib import Path

from .agent import Agent, Event
from .config import require_api_key
from .providers import DEFAULT_PROVIDER, get_provider
from .report import StatsSnapshot
from .resilience import ResilientClient, RetryPolicy, create_client
from .tools import ToolContext, tools_prompt
from .transport import DEFAULT_TIMEOUT


@dataclass
class Result:
    """Result of a session run or ask call."""

    answer: str | None
    exhausted: bool
    error: str | None
    messages: list[dict]
    events: list[Event] = field(default_factory=list)
    stats: StatsSnapshot | None = None


class Session:
    """Programmatic interface to the agent loop.

    Call .run() for independent questions or .ask() for a multi-turn
    conversation. Setup (provider, key, client) happens on first use.
    """

    def __init__(
        self,
        *,
        base_dir: str = ".",
        provider: str = DEFAULT_PROVIDER,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
        max_iterations: int = 10,
        max_tokens: int | None = None,
        temperature: float | None = None,
        request_timeout: float = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        client: ResilientClient | None = None,
    ):
        self.base_dir = base_dir
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.retry_policy = retry_policy
        self._client = client
        self._agent: Agent | None = None

    def _setup(self) -> None:
        if self._client is not None:
            return
        provider = get_provider(self.provider)
        key = require_api_key(provider, self.api_key)
        self._client = create_client(
            provider,
            key,
            model=self.model,
            base_url=self.base_url,
            timeout=self.request_timeout,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            policy=self.retry_policy,
        )

    def _new_agent(self) -> Agent:
        self._setup()
        prompt = self.system_prompt
        if prompt is not None:
            prompt += tools_prompt()
        return Agent(
            self._client,
            system_prompt=prompt,
            max_iterations=self.max_iterations,
            ctx=ToolContext(Path(self.base_dir).resolve()),
        )

    @staticmethod
    def _collect(agent: Agent, question: str) -> Result:
        events = list(agent.turn(question))
        answer = next((e.text for e in events if e.kind == "answer"), None)
        error = next((e.text for e in events if e.kind == "error"), None)
        exhausted = any(e.kind == "warning" for e in events)
        return Result(
            answer=answer,
            exhausted=exhausted,
            error=error,
            messages=agent.history(),
            events=events,
            stats=agent.stats.snapshot(),
        )

    def run(self, question: str) -> Result:
        """Single-shot: each call starts from a fresh conversation."""
        return self._collect(self._new_agent(), question)

    def ask(self, question: str) -> Result:
        """Conversational: share context across questions (like the REPL)."""
        if self._agent is None:
            self._agent = self._new_agent()
        return self._collect(self._agent, question)

    def reset(self) -> None:
        """Forget the conversation; the next ask() starts fresh."""
        if self._agent is not None:
            self._agent.clear_history()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
