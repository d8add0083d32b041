"""Closed table of supported chat-completion providers."""

from dataclasses import dataclass

from .report import ConfigError

USER_AGENT = "Zesbe/0.3"


@dataclass(frozen=True)
class Provider:
    name: str
    base_url: str
    model: str
    requests_per_minute: int
    headers: tuple[tuple[str, str], ...] = ()
    needs_key: bool = True

    @property
    def bucket_capacity(self) -> int:
        return self.requests_per_minute * 2

    @property
    def env_var(self) -> str:
        return f"{self.name.upper()}_API_KEY"


PROVIDERS: dict[str, Provider] = {
    p.name: p
    for p in (
        Provider("minimax", "https://api.minimax.io/v1", "MiniMax-M2", 100),
        Provider("openai", "https://api.openai.com/v1", "gpt-4o", 60),
        Provider(
            "anthropic",
            "https://api.anthropic.com/v1",
            "claude-sonnet-4-20250514",
            50,
            headers=(("anthropic-version", "2023-06-01"),),
        ),
        Provider(
            "google",
            "https://generativelanguage.googleapis.com/v1beta",
            "gemini-2.0-flash",
            60,
        ),
        Provider("groq", "https://api.groq.com/openai/v1", "llama-3.3-70b-versatile", 30),
        Provider("deepseek", "https://api.deepseek.com/v1", "deepseek-chat", 60),
        Provider(
            "openrouter",
            "https://openrouter.ai/api/v1",
            "anthropic/claude-sonnet-4",
            30,
            headers=(
                ("HTTP-Referer", "https://github.com/zesbe/zesbe-go"),
                ("X-Title", "Zesbe"),
            ),
        ),
        # Local server: no key, effectively no rate limit.
        Provider("ollama", "http://localhost:11434/v1", "llama3.2", 1000, needs_key=False),
    )
}

DEFAULT_PROVIDER = "minimax"


def get_provider(name: str) -> Provider:
    try:
        return PROVIDERS[name]
    except KeyError:
        supported = ", ".join(sorted(PROVIDERS))
        raise ConfigError(
            f"unknown provider {name!r} (supported: {supported})"
        ) from None
