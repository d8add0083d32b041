"""ANSI-formatted terminal output using Rich.

Diagnostics and tool indicators go to stderr; answers go to stdout.
"""

from pathlib import PurePath

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

_console = Console(stderr=True)
_out = Console()

# name -> (icon, action)
TOOL_INDICATORS: dict[str, tuple[str, str]] = {
    "read_file": ("\U0001f4d6", "Reading"),
    "write_file": ("✍️", "Writing"),
    "edit_file": ("\U0001f4dd", "Editing"),
    "list_directory": ("\U0001f4c1", "Listing"),
    "create_directory": ("\U0001f4c2", "Creating"),
    "delete_file": ("\U0001f5d1️", "Deleting"),
    "copy_file": ("\U0001f4cb", "Copying"),
    "move_file": ("\U0001f4e6", "Moving"),
    "find_files": ("\U0001f50d", "Searching"),
    "grep_files": ("\U0001f50e", "Searching"),
    "code_search": ("\U0001f52c", "Analyzing"),
    "find_todos": ("\U0001f4cc", "Scanning"),
    "count_lines": ("\U0001f522", "Counting"),
    "project_tree": ("\U0001f333", "Mapping"),
    "run_command": ("⚡", "Running"),
    "git_status": ("\U0001f4ca", "Checking"),
    "git_diff": ("\U0001f4c3", "Diffing"),
    "git_log": ("\U0001f4dc", "Viewing"),
    "git_branch": ("\U0001f33f", "Listing"),
    "git_add": ("➕", "Staging"),
    "git_commit": ("\U0001f4be", "Committing"),
    "git_push": ("\U0001f680", "Pushing"),
    "git_pull": ("⬇️", "Pulling"),
    "fetch_url": ("\U0001f310", "Fetching"),
    "get_cwd": ("\U0001f4cd", "Locating"),
    "change_directory": ("\U0001f4c2", "Changing"),
    "system_info": ("\U0001f4bb", "Inspecting"),
}
DEFAULT_INDICATOR = ("\U0001f527", "Executing")

_LANGUAGES = {
    ".py": "python",
    ".go": "go",
    ".js": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "bash",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
}


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level consoles from CLI flags.

    Call once at startup, before any output.
    """
    global _console, _out
    kwargs: dict = {}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(stderr=True, **kwargs)
    _out = Console(**kwargs)


# -- Small text helpers -------------------------------------------------------


def format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    return f"{seconds:.1f}s"


def truncate_string(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def truncate_path(path: str, max_len: int = 40) -> str:
    if len(path) <= max_len:
        return path
    name = PurePath(path).name
    if len(name) + 4 >= max_len:
        return truncate_string(name, max_len)
    return ".../" + path[-(max_len - 4) :]


def detect_language(path: str) -> str:
    return _LANGUAGES.get(PurePath(path).suffix.lower(), "")


def preview_language(name: str, params: dict) -> str:
    if name == "git_diff":
        return "diff"
    if name == "run_command":
        return "bash"
    if name == "read_file":
        return detect_language(params.get("path", ""))
    return ""


def describe_call(name: str, params: dict) -> str:
    """One-line human description of a tool call, e.g. ``Reading main.py``."""
    icon, action = TOOL_INDICATORS.get(name, DEFAULT_INDICATOR)
    if "path" in params:
        target = truncate_path(params["path"])
    elif "command" in params:
        target = truncate_string(params["command"], 50)
    elif "url" in params:
        target = truncate_string(params["url"], 50)
    elif "pattern" in params:
        target = truncate_string(params["pattern"], 40)
    elif "source" in params:
        target = f"{truncate_path(params['source'])} -> {truncate_path(params.get('destination', ''))}"
    elif "message" in params:
        target = truncate_string(params["message"], 40)
    else:
        target = name
    return f"{icon} {action} {target}"


# -- Tool calls --------------------------------------------------------------


def tool_start(name: str, params: dict) -> None:
    _console.print(Text(f"  {describe_call(name, params)}", style="bold magenta"))


def tool_result(name: str, params: dict, elapsed: float, preview: str) -> None:
    header = Text()
    header.append(f"  ✅ {name}", style="green")
    header.append(f"  completed in {format_elapsed(elapsed)}", style="green")
    _console.print(header)
    if preview:
        lang = preview_language(name, params)
        if lang:
            _console.print(Syntax(preview, lang, theme="ansi_dark", word_wrap=True))
        else:
            for line in preview.splitlines():
                _console.print(Text(f"    {line}", style="dim"))


def tool_error(name: str, msg: str, elapsed: float | None = None) -> None:
    header = Text()
    header.append(f"  ❌ {name}", style="bold red")
    if elapsed is not None:
        header.append(f"  {format_elapsed(elapsed)}", style="red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


# -- Assistant text ----------------------------------------------------------


def assistant_text(text: str) -> None:
    line = Text()
    line.append("  [assistant] ", style="blue")
    line.append(text)
    _console.print(line)


def answer(text: str) -> None:
    """Render the final answer as markdown on stdout."""
    _out.print(Markdown(text))


def llm_spinner(label: str = "Thinking"):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


def turn_header(provider: str, model: str, token_est: int) -> None:
    _console.print(Rule(f"{provider}/{model} (~{token_est} tokens)", style="cyan"))


# -- Tables ------------------------------------------------------------------


def stats_table(snapshot) -> None:
    table = Table(title="Session statistics", show_header=False, box=None)
    table.add_row("Requests", str(snapshot.total_requests))
    table.add_row("Errors", str(snapshot.total_errors))
    table.add_row("Tokens", str(snapshot.total_tokens))
    for name, counts in sorted(snapshot.tool_stats.items()):
        table.add_row(
            f"  {name}", f"{counts['succeeded']} ok / {counts['failed']} failed"
        )
    _console.print(table)


def providers_table(providers, current: str) -> None:
    table = Table(title="Providers")
    table.add_column("")
    table.add_column("Name")
    table.add_column("Default model")
    table.add_column("Rate (rpm)", justify="right")
    for p in providers:
        table.add_row(
            "*" if p.name == current else "",
            p.name,
            escape(p.model),
            str(p.requests_per_minute),
        )
    _console.print(table)


def sessions_table(sessions) -> None:
    if not sessions:
        info("no saved sessions")
        return
    table = Table(title="Sessions")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Provider/model")
    table.add_column("Messages", justify="right")
    table.add_column("Updated")
    for s in sessions:
        table.add_row(
            s.id[:8],
            escape(s.title),
            escape(f"{s.provider}/{s.model}"),
            str(s.message_count),
            s.updated_at[:16].replace("T", " "),
        )
    _console.print(table)


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner(provider: str, model: str) -> None:
    _console.print(
        Text(f"Zesbe ({provider}/{model}). Type /help for commands, /exit or Ctrl-D to quit.", style="dim")
    )
