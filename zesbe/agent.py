import argparse
import copy
import logging
import os
import queue
import sys
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Callable, Iterator

import tiktoken

from . import fmt
from .config import (
    _UNSET,
    apply_config_to_args,
    generate_config,
    load_config,
    require_api_key,
)
from .logs import data_dir, setup_logging
from .protocol import (
    display_text,
    extract_calls,
    format_result,
    strip_think,
    tool_results_message,
)
from .providers import PROVIDERS, Provider, get_provider
from .report import (
    AgentBusyError,
    AgentError,
    Cancelled,
    ClientStats,
    TransportError,
)
from .resilience import ResilientClient, RetryPolicy, create_client
from .store import SessionStore
from .tools import ToolCall, ToolContext, ToolResult, execute, tools_prompt

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"
MAX_TOOL_ITERATIONS = 10
PREVIEW_CHARS = 800
EVENT_QUEUE_SIZE = 100
POLL_INTERVAL = 0.02  # seconds between UI polls of a running turn
PUT_RETRY_INTERVAL = 0.05
MAX_ITERATIONS_MESSAGE = "Maximum tool iterations reached."

# Agent states
IDLE = "idle"
AWAITING_MODEL = "awaiting_model"
EXECUTING_TOOLS = "executing_tools"
DONE = "done"
ERRORED = "errored"


@lru_cache(maxsize=1)
def _encoder():
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    return len(_encoder().encode(text, disallowed_special=()))


def estimate_tokens(messages: list, counter: Callable[[str], int] = count_tokens) -> int:
    """Token estimate for a message list, ~4 tokens of overhead per message."""
    total = sum(counter(m.get("content", "") or "") for m in messages)
    return total + 4 * len(messages)


def default_system_prompt() -> str:
    base = DEFAULT_SYSTEM_PROMPT_FILE.read_text(encoding="utf-8").strip()
    return base + tools_prompt()


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


@dataclass
class Event:
    """One entry in a turn's ordered event log.

    kind is one of: text, tool_start, tool_result, answer, warning, error, done.
    """

    kind: str
    text: str = ""
    call: ToolCall | None = None
    result: ToolResult | None = None
    elapsed: float = 0.0
    iteration: int = 0
    state: str = ""


class TurnHandle:
    """Polling facade over a turn running on its own thread."""

    def __init__(self, maxsize: int = EVENT_QUEUE_SIZE):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.cancel_event = threading.Event()
        self._finished = threading.Event()
        self._thread: threading.Thread | None = None

    def _put(self, event: Event) -> None:
        # Never block forever on a full queue: give up once the turn is cancelled.
        while True:
            try:
                self._queue.put(event, timeout=PUT_RETRY_INTERVAL)
                return
            except queue.Full:
                if self.cancel_event.is_set():
                    logger.debug("dropping %s event, consumer stopped draining", event.kind)
                    return

    def poll(self) -> list[Event]:
        """Return every event queued so far without blocking."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def events(self) -> Iterator[Event]:
        """Blocking iteration until the turn's ``done`` event."""
        while True:
            try:
                event = self._queue.get(timeout=PUT_RETRY_INTERVAL)
            except queue.Empty:
                if self._finished.is_set() and self._queue.empty():
                    return
                continue
            yield event
            if event.kind == "done":
                return

    def cancel(self) -> None:
        self.cancel_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def done(self) -> bool:
        return self._finished.is_set() and self._queue.empty()


class Agent:
    """Owns one conversation and drives the model/tool loop for it.

    History is mutated only by the thread running the turn; everything
    else reads it through history().
    """

    def __init__(
        self,
        client: ResilientClient,
        *,
        system_prompt: str | None = None,
        max_iterations: int = MAX_TOOL_ITERATIONS,
        ctx: ToolContext | None = None,
        store: SessionStore | None = None,
        stats: ClientStats | None = None,
        counter: Callable[[str], int] = count_tokens,
    ):
        self.client = client
        self.max_iterations = max_iterations
        self.ctx = ctx or ToolContext()
        self.store = store
        self.stats = stats or ClientStats()
        self.counter = counter
        self.state = IDLE
        self._busy = threading.Lock()
        self._messages: list[dict] = []
        if system_prompt is None:
            system_prompt = default_system_prompt()
        if system_prompt:
            self._messages.append({"role": "system", "content": system_prompt})

    # -- history -------------------------------------------------------------

    def history(self) -> list[dict]:
        return copy.deepcopy(self._messages)

    def message_count(self) -> int:
        return len(self._messages)

    def _leading_system(self) -> list[dict]:
        if self._messages and self._messages[0]["role"] == "system":
            return self._messages[:1]
        return []

    def clear_history(self) -> int:
        """Drop everything but the system message. Returns the number removed."""
        keep = self._leading_system()
        dropped = len(self._messages) - len(keep)
        self._messages[:] = keep
        self.state = IDLE
        return dropped

    def set_system_prompt(self, prompt: str) -> None:
        if self._leading_system():
            self._messages[0] = {"role": "system", "content": prompt}
        else:
            self._messages.insert(0, {"role": "system", "content": prompt})

    def load_messages(self, messages: list[dict]) -> None:
        """Replace the conversation with restored messages, keeping our system prompt."""
        restored = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
        self._messages[:] = self._leading_system() + restored
        self.state = IDLE

    def switch_client(self, client: ResilientClient, *, keep_history: bool = False) -> None:
        old = self.client
        self.client = client
        if old is not client and hasattr(old, "close"):
            old.close()
        if not keep_history:
            self.clear_history()

    def close(self) -> None:
        if hasattr(self.client, "close"):
            self.client.close()

    # -- turns ---------------------------------------------------------------

    def turn(self, text: str, cancel: threading.Event | None = None) -> Iterator[Event]:
        """Run one user turn, yielding events as they happen.

        Raises AgentBusyError on first iteration if another turn is running.
        """
        if not self._busy.acquire(blocking=False):
            raise AgentBusyError("a turn is already in progress")
        try:
            yield from self._run_turn(text, cancel)
        finally:
            self._busy.release()

    def start_turn(self, text: str) -> TurnHandle:
        """Run one user turn on a worker thread; drain it with TurnHandle.poll()."""
        if not self._busy.acquire(blocking=False):
            raise AgentBusyError("a turn is already in progress")
        handle = TurnHandle()

        def worker():
            try:
                for event in self._run_turn(text, handle.cancel_event):
                    handle._put(event)
            except Exception as e:
                logger.exception("turn crashed")
                self.state = ERRORED
                handle._put(Event("error", text=f"internal error: {e}"))
                handle._put(Event("done", state=ERRORED))
            finally:
                self._busy.release()
                handle._finished.set()

        handle._thread = threading.Thread(target=worker, name="zesbe-turn", daemon=True)
        handle._thread.start()
        return handle

    def _record_attempt(self, error: TransportError | None, text: str | None) -> None:
        if error is not None:
            self.stats.record_request(error=True)
            return
        tokens = getattr(self.client, "last_usage_tokens", 0)
        if not tokens:
            tokens = estimate_tokens(self._messages, self.counter) + self.counter(text or "")
        self.stats.record_request(tokens=tokens)

    def _persist(self, question: str, answer: str | None) -> None:
        if self.store is None:
            return
        try:
            self.store.add_message("user", question, self.counter(question))
            if answer is not None:
                self.store.add_message("assistant", answer, self.counter(answer))
        except (OSError, AgentError) as e:
            logger.warning("failed to persist exchange: %s", e)

    def _run_turn(self, text: str, cancel: threading.Event | None) -> Iterator[Event]:
        self._messages.append({"role": "user", "content": text})

        for iteration in range(1, self.max_iterations + 1):
            self.state = AWAITING_MODEL
            try:
                if cancel is not None and cancel.is_set():
                    raise Cancelled("cancelled")
                response = self.client.call(
                    self._messages, cancel=cancel, on_attempt=self._record_attempt
                )
            except Cancelled:
                yield from self._fail(text, "cancelled", iteration)
                return
            except TransportError as e:
                yield from self._fail(text, str(e), iteration)
                return

            calls = extract_calls(response)
            if not calls:
                answer = strip_think(response)
                self._messages.append({"role": "assistant", "content": response})
                self.state = DONE
                yield Event("answer", text=answer, iteration=iteration)
                self._persist(text, answer)
                yield Event("done", iteration=iteration, state=DONE)
                return

            self.state = EXECUTING_TOOLS
            shown = display_text(response)
            if shown:
                yield Event("text", text=shown, iteration=iteration)

            results = []
            for call in calls:
                if cancel is not None and cancel.is_set():
                    # Every call in the stored response gets an answer.
                    results.append(format_result(call, ToolResult.fail("cancelled")))
                    continue
                yield Event("tool_start", call=call, iteration=iteration)
                t0 = time.monotonic()
                result = execute(call, self.ctx)
                elapsed = time.monotonic() - t0
                self.stats.record_tool(call.name, result.success, elapsed)
                logger.info(
                    "tool %s success=%s duration=%.3fs", call.name, result.success, elapsed
                )
                yield Event(
                    "tool_result",
                    text=preview(result.output),
                    call=call,
                    result=result,
                    elapsed=elapsed,
                    iteration=iteration,
                )
                results.append(format_result(call, result))

            self._messages.append({"role": "assistant", "content": response})
            self._messages.append({"role": "user", "content": tool_results_message(results)})

            if cancel is not None and cancel.is_set():
                yield from self._fail(text, "cancelled", iteration)
                return

        self.state = DONE
        logger.warning("turn stopped after %d tool iterations", self.max_iterations)
        yield Event("warning", text=MAX_ITERATIONS_MESSAGE, iteration=self.max_iterations)
        self._persist(text, None)
        yield Event("done", iteration=self.max_iterations, state=DONE)

    def _fail(self, question: str, message: str, iteration: int) -> Iterator[Event]:
        self.state = ERRORED
        logger.error("turn failed: %s", message)
        yield Event("error", text=message, iteration=iteration)
        self._persist(question, None)
        yield Event("done", iteration=iteration, state=ERRORED)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="zesbe",
        usage="%(prog)s [options] [question]",
        description="Terminal chat client with a tool-calling agent for OpenAI-compatible APIs.",
    )
    parser.add_argument(
        "--version", action="store_true", help="Print the version and exit."
    )
    parser.add_argument(
        "question",
        nargs="?",
        default=None,
        help="Ask one question and exit. Without it, start an interactive session.",
    )
    parser.add_argument(
        "--repl",
        action="store_true",
        help="Stay interactive after answering the question.",
    )
    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDERS),
        default=_UNSET,
        help="LLM provider (default: minimax).",
    )
    parser.add_argument(
        "--model", default=_UNSET, help="Model name (default: the provider's default)."
    )
    parser.add_argument(
        "--base-url", default=_UNSET, help="Override the provider's API base URL."
    )
    parser.add_argument(
        "--api-key",
        default=_UNSET,
        help="API key (default: $<PROVIDER>_API_KEY or ~/.<provider>_api_key).",
    )
    parser.add_argument(
        "--system-prompt", default=_UNSET, help="Replace the built-in system prompt."
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=_UNSET,
        help="Maximum model/tool round trips per question (default: 10).",
    )
    parser.add_argument(
        "--max-tokens", type=int, default=_UNSET, help="max_tokens sent to the API."
    )
    parser.add_argument(
        "--temperature", type=float, default=_UNSET, help="Sampling temperature."
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=_UNSET,
        help="Overall deadline in seconds for one streamed request (default: 120).",
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        default=_UNSET,
        help="Don't save the conversation to the session store.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Only print answers and errors.",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Also log debug output to stderr."
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a commented config template and exit.",
    )
    parser.add_argument(
        "--project",
        action="store_true",
        help="With --init-config, print the project (zesbe.toml) template.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("zesbe")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config(project=args.project))
        sys.exit(0)

    try:
        code = _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)
    sys.exit(code)


def _run_main(args) -> int:
    config = load_config(Path.cwd())
    apply_config_to_args(args, config)
    fmt.init(color=args.color, no_color=args.no_color)
    setup_logging(args.log_level, args.log_file, debug=args.debug)

    agent = build_agent(args)
    try:
        if args.question is not None and not args.repl:
            return run_once(agent, args.question, verbose=not args.quiet)
        repl_loop(agent, args, initial=args.question)
        return 0
    finally:
        agent.close()


def make_client(args, provider: Provider, model: str | None = None) -> ResilientClient:
    """Build a client for ``provider``. CLI key/URL overrides apply to the startup provider only."""
    same = provider.name == args.provider
    api_key = require_api_key(provider, args.api_key if same else None)
    policy = RetryPolicy(
        max_retries=args.max_retries,
        initial_wait=float(args.initial_wait),
        max_wait=float(args.max_wait),
        multiplier=float(args.multiplier),
    )
    return create_client(
        provider,
        api_key,
        model=model or (args.model if same else None),
        base_url=args.base_url if same else None,
        timeout=float(args.request_timeout),
        max_tokens=args.max_tokens,
        temperature=args.temperature,
        policy=policy,
    )


def build_agent(args) -> Agent:
    provider = get_provider(args.provider)
    client = make_client(args, provider)

    store = None
    if not args.no_history:
        try:
            store = SessionStore(args.data_dir or data_dir())
            store.new_session(provider.name, client.model, os.getcwd())
        except OSError as e:
            fmt.warning(f"session history disabled: {e}")
            store = None

    system_prompt = args.system_prompt
    if system_prompt is not None:
        system_prompt += tools_prompt()
    return Agent(
        client,
        system_prompt=system_prompt,
        max_iterations=args.max_iterations,
        store=store,
    )


def render_event(event: Event, verbose: bool = True) -> None:
    """Print a non-answer event to stderr."""
    if event.kind == "text":
        if verbose:
            fmt.assistant_text(event.text)
    elif event.kind == "tool_start":
        if verbose:
            fmt.tool_start(event.call.name, event.call.params)
    elif event.kind == "tool_result":
        if not verbose:
            return
        if event.result.success:
            fmt.tool_result(event.call.name, event.call.params, event.elapsed, event.text)
        else:
            fmt.tool_error(event.call.name, event.result.error, event.elapsed)
    elif event.kind == "warning":
        fmt.warning(event.text)
    elif event.kind == "error":
        fmt.error(event.text)


def run_once(agent: Agent, question: str, verbose: bool = True) -> int:
    """Answer one question. Returns 0, 1 on error, 2 when the iteration cap is hit."""
    exit_code = 0
    for event in agent.turn(question):
        if event.kind == "answer":
            print(event.text)
            continue
        render_event(event, verbose)
        if event.kind == "error":
            exit_code = 1
        elif event.kind == "warning":
            exit_code = 2
    return exit_code


def run_interactive_turn(agent: Agent, text: str, verbose: bool = True) -> None:
    """Run a turn in the background and render its events as they arrive."""
    if verbose:
        token_est = estimate_tokens(agent.history(), agent.counter) + agent.counter(text)
        fmt.turn_header(agent.client.provider.name, agent.client.model, token_est)
    handle = agent.start_turn(text)
    try:
        with fmt.llm_spinner():
            while not handle.done:
                for event in handle.poll():
                    if event.kind == "answer":
                        fmt.answer(event.text)
                    else:
                        render_event(event, verbose)
                time.sleep(POLL_INTERVAL)
    except KeyboardInterrupt:
        handle.cancel()
        handle.join()
        for event in handle.poll():
            if event.kind not in ("answer", "error"):
                render_event(event, verbose)
        fmt.warning("interrupted, question aborted.")


# ---------------------------------------------------------------------------
# REPL command helpers
# ---------------------------------------------------------------------------


def _repl_help() -> None:
    fmt.info(
        "Available commands:\n"
        "  /help                     Show this help message\n"
        "  /clear                    Reset the conversation\n"
        "  /new                      Reset and start a new saved session\n"
        "  /provider [name] [--keep] Show or switch provider (--keep keeps history)\n"
        "  /providers                List providers\n"
        "  /model [name]             Show or switch model\n"
        "  /stats                    Request and tool statistics\n"
        "  /sessions                 List saved sessions\n"
        "  /load <id>                Restore a saved session\n"
        "  /export <id> [file]       Export a session as JSON\n"
        "  /cwd [path]               Show or change the tools' working directory\n"
        "  /ls [path]                List a directory\n"
        "  /cat <file>               Print a file\n"
        "  /pwd, /cd <path>          Show or change the working directory\n"
        "  /git <cmd>                status, log, diff [--staged] or branch\n"
        "  /run <command>            Run a shell command\n"
        "  /exit, /quit              Exit"
    )


def _repl_clear(agent: Agent) -> None:
    dropped = agent.clear_history()
    fmt.info(f"context cleared ({dropped} messages removed)")


def _repl_new(agent: Agent) -> None:
    agent.clear_history()
    if agent.store is not None:
        agent.store.new_session(agent.client.provider.name, agent.client.model, str(agent.ctx.cwd))
    fmt.info("started a new session")


def _repl_provider(agent: Agent, args, arg: str) -> None:
    parts = arg.split()
    if not parts:
        fmt.info(f"provider: {agent.client.provider.name} (model {agent.client.model})")
        return
    keep = "--keep" in parts
    names = [p for p in parts if p != "--keep"]
    if not names:
        fmt.warning("/provider requires a provider name")
        return
    try:
        provider = get_provider(names[0])
        client = make_client(args, provider)
    except AgentError as e:
        fmt.warning(str(e))
        return
    agent.switch_client(client, keep_history=keep)
    fmt.info(
        f"switched to {provider.name}/{client.model}"
        + ("" if keep else " (history cleared)")
    )


def _repl_model(agent: Agent, args, arg: str) -> None:
    name = arg.strip()
    if not name:
        fmt.info(f"model: {agent.client.model}")
        return
    try:
        client = make_client(args, agent.client.provider, model=name)
    except AgentError as e:
        fmt.warning(str(e))
        return
    agent.switch_client(client, keep_history=True)
    fmt.info(f"model set to {name}")


def _repl_stats(agent: Agent) -> None:
    fmt.stats_table(agent.stats.snapshot())
    fmt.info(f"messages in context: {agent.message_count()}")
    if agent.store is not None:
        s = agent.store.stats()
        fmt.info(
            f"saved: {s['total_sessions']} sessions, {s['total_messages']} messages, "
            f"{s['total_tokens']} tokens"
        )


def _repl_load(agent: Agent, arg: str) -> None:
    if agent.store is None:
        fmt.warning("session history is disabled")
        return
    session_id = agent.store.resolve_id(arg.strip()) if arg.strip() else None
    if session_id is None:
        fmt.warning(f"no unique session matches {arg.strip()!r}")
        return
    messages = agent.store.load_session(session_id)
    agent.load_messages([{"role": m.role, "content": m.content} for m in messages])
    fmt.info(f"loaded session {session_id[:8]} ({len(messages)} messages)")


def _repl_export(agent: Agent, arg: str) -> None:
    if agent.store is None:
        fmt.warning("session history is disabled")
        return
    parts = arg.split(None, 1)
    session_id = agent.store.resolve_id(parts[0]) if parts else None
    if session_id is None:
        fmt.warning("/export requires a session id")
        return
    data = agent.store.export_session(session_id)
    if len(parts) > 1:
        target = agent.ctx.resolve(parts[1])
        try:
            target.write_text(data, encoding="utf-8")
        except OSError as e:
            fmt.warning(f"failed to write {target}: {e}")
            return
        fmt.info(f"exported to {target}")
    else:
        print(data)


def _repl_cwd(agent: Agent, arg: str) -> None:
    if arg.strip():
        p = agent.ctx.resolve(arg.strip())
        if not p.is_dir():
            fmt.warning(f"not a directory: {arg.strip()}")
            return
        agent.ctx.cwd = p
    fmt.info(f"working directory: {agent.ctx.cwd}")


_GIT_SHORTCUTS = {
    "status": "git_status",
    "log": "git_log",
    "diff": "git_diff",
    "branch": "git_branch",
}


def _repl_tool(agent: Agent, call: ToolCall) -> None:
    """Run one tool on the operator's behalf and print its output."""
    result = execute(call, agent.ctx)
    if not result.success:
        fmt.tool_error(call.name, result.error)
        if result.output:
            print(result.output.rstrip("\n"))
        return
    if result.output:
        print(result.output.rstrip("\n"))
    else:
        fmt.info("no output")


def _repl_shortcut(agent: Agent, cmd: str, arg: str) -> None:
    arg = arg.strip()
    if cmd == "/ls":
        call = ToolCall("list_directory", {"path": arg or "."})
    elif cmd == "/pwd":
        call = ToolCall("get_cwd", {})
    elif cmd in ("/cat", "/cd", "/run"):
        if not arg:
            usage = {"/cat": "<file>", "/cd": "<path>", "/run": "<command>"}[cmd]
            fmt.warning(f"usage: {cmd} {usage}")
            return
        if cmd == "/cat":
            call = ToolCall("read_file", {"path": arg})
        elif cmd == "/cd":
            call = ToolCall("change_directory", {"path": arg})
        else:
            call = ToolCall("run_command", {"command": arg})
    else:
        words = arg.split()
        name = _GIT_SHORTCUTS.get(words[0]) if words else None
        if name is None:
            fmt.warning("usage: /git status|log|diff [--staged]|branch")
            return
        params = {}
        if name == "git_diff" and "--staged" in words[1:]:
            params["staged"] = "true"
        call = ToolCall(name, params)
    _repl_tool(agent, call)


def repl_loop(agent: Agent, args, initial: str | None = None) -> None:
    """Interactive read-eval-print loop."""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.history import FileHistory

    history_path = Path(args.data_dir or data_dir()) / "repl_history"
    history_path.parent.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(history_path)),
        enable_history_search=True,
    )
    prompt_text = FormattedText([("bold fg:ansigreen", "zesbe> ")])
    verbose = not args.quiet

    if verbose:
        fmt.repl_banner(agent.client.provider.name, agent.client.model)

    pending = initial
    while True:
        if pending is not None:
            line, pending = pending, None
        else:
            try:
                print(file=sys.stderr)  # blank line before prompt
                line = session.prompt(prompt_text)
            except (EOFError, KeyboardInterrupt):
                print(file=sys.stderr)
                break

        line = line.strip()
        if not line:
            continue
        if line in ("/exit", "/quit"):
            break

        cmd_parts = line.split(None, 1)
        cmd = cmd_parts[0].lower()
        cmd_arg = cmd_parts[1] if len(cmd_parts) > 1 else ""

        # Only known commands are intercepted; unknown /foo goes to the model.
        if cmd == "/help":
            _repl_help()
        elif cmd == "/clear":
            _repl_clear(agent)
        elif cmd == "/new":
            _repl_new(agent)
        elif cmd == "/provider":
            _repl_provider(agent, args, cmd_arg)
        elif cmd == "/providers":
            fmt.providers_table(PROVIDERS.values(), agent.client.provider.name)
        elif cmd == "/model":
            _repl_model(agent, args, cmd_arg)
        elif cmd == "/stats":
            _repl_stats(agent)
        elif cmd == "/sessions":
            if agent.store is None:
                fmt.warning("session history is disabled")
            else:
                fmt.sessions_table(agent.store.list_sessions())
        elif cmd == "/load":
            _repl_load(agent, cmd_arg)
        elif cmd == "/export":
            _repl_export(agent, cmd_arg)
        elif cmd == "/cwd":
            _repl_cwd(agent, cmd_arg)
        elif cmd in ("/ls", "/cat", "/pwd", "/cd", "/git", "/run"):
            _repl_shortcut(agent, cmd, cmd_arg)
        else:
            run_interactive_turn(agent, line, verbose)


if __name__ == "__main__":
    main()
