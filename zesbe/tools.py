"""Tool catalog, dispatch, and the local tool implementations.

Every tool takes its parameters as a string mapping plus a ToolContext
and returns a ToolResult. Paths are resolved against ``ToolContext.cwd``,
which ``change_directory`` updates; the process working directory is never
touched.
"""

import fnmatch
import logging
import os
import platform
import re
import shutil
import socket
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

MAX_OUTPUT_BYTES = 50 * 1024  # 50 KB
MAX_COMMAND_OUTPUT = 1 * 1024 * 1024  # 1 MB captured from a shell command
BINARY_CHECK_BYTES = 8 * 1024  # 8 KB
MAX_FIND_RESULTS = 500
MAX_GREP_MATCHES = 200
COMMAND_TIMEOUT = 30
GIT_TIMEOUT = 120

_SKIP_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", "venv"})


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: tuple[str, ...] = ()
    required: tuple[str, ...] = ()


@dataclass
class ToolCall:
    name: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass
class ToolResult:
    success: bool
    output: str = ""
    error: str = ""

    @classmethod
    def ok(cls, output: str) -> "ToolResult":
        return cls(True, output, "")

    @classmethod
    def fail(cls, error: str, output: str = "") -> "ToolResult":
        return cls(False, output, error or "unknown error")


@dataclass
class ToolContext:
    """Per-agent execution state threaded through every tool call."""

    cwd: Path = field(default_factory=Path.cwd)

    def resolve(self, path: str) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.cwd / p
        return p.resolve()


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    # Files
    ToolDefinition("read_file", "Read the contents of a file", ("path",), ("path",)),
    ToolDefinition(
        "write_file",
        "Write content to a file (creates or overwrites)",
        ("path", "content"),
        ("path",),
    ),
    ToolDefinition(
        "edit_file",
        "Replace specific text in a file",
        ("path", "old_content", "new_content"),
        ("path", "old_content"),
    ),
    ToolDefinition("list_directory", "List files and folders in a directory", ("path",)),
    ToolDefinition("create_directory", "Create a new directory", ("path",), ("path",)),
    ToolDefinition(
        "delete_file", "Delete a file or empty directory", ("path",), ("path",)
    ),
    ToolDefinition(
        "copy_file",
        "Copy a file to a new location",
        ("source", "destination"),
        ("source", "destination"),
    ),
    ToolDefinition(
        "move_file",
        "Move a file to a new location",
        ("source", "destination"),
        ("source", "destination"),
    ),
    # Search
    ToolDefinition(
        "find_files", "Search for files matching a pattern", ("path", "pattern")
    ),
    ToolDefinition(
        "grep_files",
        "Search for content in files",
        ("path", "pattern", "file_pattern"),
        ("pattern",),
    ),
    ToolDefinition(
        "code_search",
        "Search code with language filter (go, python, js, ts, rust, etc)",
        ("path", "pattern", "language"),
        ("pattern",),
    ),
    ToolDefinition("find_todos", "Find TODO, FIXME, HACK comments in code", ("path",)),
    ToolDefinition("count_lines", "Count lines of code in project", ("path",)),
    ToolDefinition(
        "project_tree", "Show project structure as tree", ("path", "depth")
    ),
    # Commands
    ToolDefinition(
        "run_command", "Execute a shell command", ("command",), ("command",)
    ),
    # Git
    ToolDefinition("git_status", "Show git repository status"),
    ToolDefinition(
        "git_diff", "Show git diff (use staged=true for staged changes)", ("staged",)
    ),
    ToolDefinition("git_log", "Show recent git commits", ("count",)),
    ToolDefinition("git_branch", "Show git branches"),
    ToolDefinition("git_add", "Stage files for commit", ("files",)),
    ToolDefinition("git_commit", "Create a git commit", ("message",), ("message",)),
    ToolDefinition("git_push", "Push to remote repository", ("remote", "branch")),
    ToolDefinition("git_pull", "Pull from remote repository", ("remote", "branch")),
    # Web
    ToolDefinition("fetch_url", "Fetch content from a URL", ("url",), ("url",)),
    # System
    ToolDefinition("get_cwd", "Get current working directory"),
    ToolDefinition(
        "change_directory", "Change current working directory", ("path",), ("path",)
    ),
    ToolDefinition("system_info", "Get system information"),
)

TOOLS_BY_NAME: dict[str, ToolDefinition] = {t.name: t for t in TOOL_DEFINITIONS}


def tools_prompt() -> str:
    """Tool-usage section of the system prompt, generated from the catalog."""
    lines = [
        "",
        "",
        "## Available Tools",
        "",
        "You can use tools by outputting a <tool_call> block. Format:",
        "",
        "```",
        "<tool_call>",
        '{"name": "tool_name", "params": {"param1": "value1"}}',
        "</tool_call>",
        "```",
        "",
        "Available tools:",
        "",
    ]
    for tool in TOOL_DEFINITIONS:
        params = ", ".join(
            f"{p} (required)" if p in tool.required else p for p in tool.parameters
        )
        lines.append(f"- **{tool.name}**: {tool.description}")
        lines.append(f"  Parameters: {params or 'none'}")
        lines.append("")
    lines += [
        "### Tool Usage Examples:",
        "",
        "To read a file:",
        "```",
        "<tool_call>",
        '{"name": "read_file", "params": {"path": "main.py"}}',
        "</tool_call>",
        "```",
        "",
        "To run a command:",
        "```",
        "<tool_call>",
        '{"name": "run_command", "params": {"command": "git status"}}',
        "</tool_call>",
        "```",
        "",
        "IMPORTANT: Always use tools when the user asks about files, folders, "
        "or wants to run commands. Don't just describe what to do - actually "
        "use the tools!",
        "",
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _truncate_bytes(text: str, limit: int, label: str) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    head = encoded[:limit].decode("utf-8", errors="ignore")
    return head + f"\n[{label} truncated at {limit // 1024}KB, total was {len(encoded)} bytes]"


def _is_binary(path: Path) -> bool:
    try:
        with path.open("rb") as f:
            return b"\x00" in f.read(BINARY_CHECK_BYTES)
    except OSError:
        return True


def _walk_files(root: Path):
    """Yield files under root, skipping VCS and dependency directories."""
    if root.is_file():
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for name in sorted(filenames):
            yield Path(dirpath) / name


def _search_lines(files, matcher: Callable[[str], bool], limit: int) -> list[str]:
    results: list[str] = []
    for path in files:
        if _is_binary(path):
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        for lineno, line in enumerate(text.splitlines(), 1):
            if matcher(line):
                results.append(f"{path}:{lineno}: {line.strip()}")
                if len(results) >= limit:
                    return results
    return results


# ---------------------------------------------------------------------------
# File tools
# ---------------------------------------------------------------------------


def _read_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    if path.is_dir():
        return ToolResult.fail(f"{path} is a directory, use list_directory instead")
    try:
        data = path.read_bytes()
    except OSError as e:
        return ToolResult.fail(f"failed to read file: {e}")
    if b"\x00" in data[:BINARY_CHECK_BYTES]:
        return ToolResult.fail(f"{path} appears to be a binary file")
    text = data.decode("utf-8", errors="replace")
    return ToolResult.ok(_truncate_bytes(text, MAX_OUTPUT_BYTES, "file"))


def _write_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(params.get("content", ""), encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"failed to write file: {e}")
    return ToolResult.ok(f"File written: {path}")


def _edit_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    old = params["old_content"]
    new = params.get("new_content", "")
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return ToolResult.fail(f"failed to read file: {e}")
    if old not in content:
        return ToolResult.fail("old content not found in file")
    try:
        path.write_text(content.replace(old, new, 1), encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"failed to write file: {e}")
    return ToolResult.ok(f"File edited: {path}")


def _list_directory(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params.get("path") or ".")
    try:
        entries = sorted(path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        return ToolResult.fail(f"failed to read directory: {e}")
    lines = []
    for entry in entries:
        try:
            st = entry.stat()
        except OSError:
            continue
        kind = "d" if entry.is_dir() else "-"
        mtime = datetime.fromtimestamp(st.st_mtime).strftime("%b %d %H:%M")
        lines.append(f"{kind} {st.st_size:8d} {mtime} {entry.name}")
    if not lines:
        return ToolResult.ok("(empty directory)")
    return ToolResult.ok(_truncate_bytes("\n".join(lines), MAX_OUTPUT_BYTES, "listing"))


def _create_directory(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return ToolResult.fail(f"failed to create directory: {e}")
    return ToolResult.ok(f"Directory created: {path}")


def _delete_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    try:
        if path.is_dir() and not path.is_symlink():
            path.rmdir()
        else:
            path.unlink()
    except OSError as e:
        return ToolResult.fail(f"failed to delete: {e}")
    return ToolResult.ok(f"Deleted: {path}")


def _copy_file(params: dict, ctx: ToolContext) -> ToolResult:
    src = ctx.resolve(params["source"])
    dst = ctx.resolve(params["destination"])
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
    except OSError as e:
        return ToolResult.fail(f"failed to copy: {e}")
    return ToolResult.ok(f"Copied: {src} -> {dst}")


def _move_file(params: dict, ctx: ToolContext) -> ToolResult:
    src = ctx.resolve(params["source"])
    dst = ctx.resolve(params["destination"])
    if not src.exists():
        return ToolResult.fail(f"failed to move: {src} does not exist")
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
    except OSError as e:
        return ToolResult.fail(f"failed to move: {e}")
    return ToolResult.ok(f"Moved: {src} -> {dst}")


# ---------------------------------------------------------------------------
# Search tools
# ---------------------------------------------------------------------------

_LANGUAGE_EXTENSIONS = {
    "go": (".go",),
    "python": (".py",),
    "py": (".py",),
    "javascript": (".js", ".jsx", ".mjs"),
    "js": (".js", ".jsx", ".mjs"),
    "typescript": (".ts", ".tsx"),
    "ts": (".ts", ".tsx"),
    "rust": (".rs",),
    "java": (".java",),
    "c": (".c", ".h"),
    "cpp": (".cpp", ".cc", ".hpp", ".h"),
    "ruby": (".rb",),
    "php": (".php",),
    "shell": (".sh", ".bash"),
}

_CODE_EXTENSIONS = frozenset(
    ext for exts in _LANGUAGE_EXTENSIONS.values() for ext in exts
) | {".md", ".toml", ".yaml", ".yml", ".json", ".html", ".css"}

_TODO_RE = re.compile(r"\b(TODO|FIXME|HACK|XXX)\b")


def _find_files(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    pattern = params.get("pattern") or "*"
    if not root.exists():
        return ToolResult.fail(f"failed to search: {root} does not exist")
    matches = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for name in sorted(dirnames + filenames):
            if fnmatch.fnmatch(name, pattern):
                matches.append(os.path.join(dirpath, name))
        if len(matches) >= MAX_FIND_RESULTS:
            break
    if not matches:
        return ToolResult.ok("No files found")
    out = "\n".join(matches[:MAX_FIND_RESULTS])
    if len(matches) > MAX_FIND_RESULTS:
        out += f"\n[results truncated at {MAX_FIND_RESULTS}]"
    return ToolResult.ok(out)


def _grep_files(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    pattern = params["pattern"]
    file_pattern = params.get("file_pattern", "")
    if not root.exists():
        return ToolResult.fail(f"failed to search: {root} does not exist")
    files = (
        p
        for p in _walk_files(root)
        if not file_pattern or fnmatch.fnmatch(p.name, file_pattern)
    )
    results = _search_lines(files, lambda line: pattern in line, MAX_GREP_MATCHES)
    if not results:
        return ToolResult.ok("No matches found")
    return ToolResult.ok("\n".join(results))


def _code_search(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    pattern = params["pattern"]
    language = params.get("language", "").lower()
    exts = _LANGUAGE_EXTENSIONS.get(language) if language else tuple(_CODE_EXTENSIONS)
    if exts is None:
        known = ", ".join(sorted(_LANGUAGE_EXTENSIONS))
        return ToolResult.fail(f"unsupported language {language!r} (known: {known})")
    try:
        regex = re.compile(pattern)
    except re.error:
        regex = re.compile(re.escape(pattern))
    files = (p for p in _walk_files(root) if p.suffix in exts)
    results = _search_lines(files, lambda line: bool(regex.search(line)), MAX_GREP_MATCHES)
    if not results:
        return ToolResult.ok("No matches found")
    return ToolResult.ok("\n".join(results))


def _find_todos(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    files = (p for p in _walk_files(root) if p.suffix in _CODE_EXTENSIONS)
    results = _search_lines(files, lambda line: bool(_TODO_RE.search(line)), MAX_GREP_MATCHES)
    if not results:
        return ToolResult.ok("No TODO/FIXME/HACK comments found")
    return ToolResult.ok(f"Found {len(results)} items:\n" + "\n".join(results))


def _count_lines(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    counts: dict[str, list[int]] = {}
    for path in _walk_files(root):
        if path.suffix not in _CODE_EXTENSIONS or _is_binary(path):
            continue
        try:
            with path.open("rb") as f:
                n = sum(1 for _ in f)
        except OSError:
            continue
        entry = counts.setdefault(path.suffix, [0, 0])
        entry[0] += 1
        entry[1] += n
    if not counts:
        return ToolResult.ok("No source files found")
    lines = [f"{'ext':<8} {'files':>6} {'lines':>8}"]
    total_files = total_lines = 0
    for ext, (files, n) in sorted(counts.items(), key=lambda kv: -kv[1][1]):
        lines.append(f"{ext:<8} {files:>6} {n:>8}")
        total_files += files
        total_lines += n
    lines.append(f"{'total':<8} {total_files:>6} {total_lines:>8}")
    return ToolResult.ok("\n".join(lines))


def _project_tree(params: dict, ctx: ToolContext) -> ToolResult:
    root = ctx.resolve(params.get("path") or ".")
    try:
        depth = int(params.get("depth") or 3)
    except ValueError:
        depth = 3
    if not root.is_dir():
        return ToolResult.fail(f"not a directory: {root}")

    lines = [root.name or str(root)]

    def walk(directory: Path, prefix: str, level: int) -> None:
        if level > depth:
            return
        try:
            children = sorted(
                (c for c in directory.iterdir() if c.name not in _SKIP_DIRS),
                key=lambda c: (not c.is_dir(), c.name),
            )
        except OSError:
            return
        for i, child in enumerate(children):
            last = i == len(children) - 1
            suffix = "/" if child.is_dir() else ""
            lines.append(f"{prefix}{'└── ' if last else '├── '}{child.name}{suffix}")
            if child.is_dir() and not child.is_symlink():
                walk(child, prefix + ("    " if last else "│   "), level + 1)

    walk(root, "", 1)
    return ToolResult.ok(_truncate_bytes("\n".join(lines), MAX_OUTPUT_BYTES, "tree"))


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------

_KILL_WAIT_TIMEOUT = 5  # seconds to wait for process to die after kill signals


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill a process and its descendants, then wait for exit."""
    if sys.platform != "win32":
        import signal

        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            pass  # already exited
    try:
        proc.kill()
    except OSError:
        pass
    try:
        proc.wait(timeout=_KILL_WAIT_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning("process %d did not exit after SIGKILL", proc.pid)


def _capture_process(proc: subprocess.Popen, timeout: float) -> tuple[str, bool]:
    """Drain a subprocess' output until exit or timeout.

    Returns (output, timed_out). Output gathered before a timeout is kept.
    """
    chunks: list[bytes] = []
    total = 0
    truncated = False

    def _reader():
        nonlocal total, truncated
        try:
            while True:
                chunk = proc.stdout.read(4096)
                if not chunk:
                    break
                if truncated:
                    continue  # keep draining so the child never blocks on a full pipe
                chunk = chunk[: MAX_COMMAND_OUTPUT - total]
                chunks.append(chunk)
                total += len(chunk)
                if total >= MAX_COMMAND_OUTPUT:
                    truncated = True
        except (OSError, ValueError):
            pass  # pipe closed after kill

    reader = threading.Thread(target=_reader, daemon=True)
    reader.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(proc)

    reader.join(timeout=2)
    proc.stdout.close()

    output = b"".join(chunks).decode("utf-8", errors="replace")
    if truncated:
        output += "\n[output truncated at 1MB]"
    return output, timed_out


def run_shell(command: str, cwd: Path, timeout: float = COMMAND_TIMEOUT) -> ToolResult:
    if sys.platform == "win32":
        argv = ["cmd.exe", "/c", command]
    else:
        argv = ["/bin/sh", "-c", command]
    popen_kwargs: dict = dict(
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        cwd=str(cwd),
    )
    if sys.platform != "win32":
        popen_kwargs["start_new_session"] = True
    try:
        proc = subprocess.Popen(argv, **popen_kwargs)
    except OSError as e:
        return ToolResult.fail(f"failed to start command: {e}")

    output, timed_out = _capture_process(proc, timeout)
    if timed_out:
        return ToolResult.fail("command timed out", output)
    if proc.returncode != 0:
        return ToolResult.fail(f"exit status {proc.returncode}", output)
    return ToolResult.ok(output)


def _run_command(params: dict, ctx: ToolContext) -> ToolResult:
    return run_shell(params["command"], ctx.cwd)


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


def _git(ctx: ToolContext, *args: str) -> ToolResult:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(ctx.cwd),
            capture_output=True,
            text=True,
            errors="replace",
            stdin=subprocess.DEVNULL,
            timeout=GIT_TIMEOUT,
        )
    except FileNotFoundError:
        return ToolResult.fail("git is not installed")
    except subprocess.TimeoutExpired:
        return ToolResult.fail(f"git {args[0]} timed out")
    output = proc.stdout
    if proc.stderr:
        output = f"{output}\n{proc.stderr}" if output else proc.stderr
    if proc.returncode != 0:
        return ToolResult.fail(f"git {args[0]} exited with status {proc.returncode}", output)
    return ToolResult.ok(output or "(no output)")


def _git_status(params: dict, ctx: ToolContext) -> ToolResult:
    return _git(ctx, "status", "--short")


def _git_diff(params: dict, ctx: ToolContext) -> ToolResult:
    if params.get("staged", "").lower() == "true":
        return _git(ctx, "diff", "--cached")
    return _git(ctx, "diff")


def _git_log(params: dict, ctx: ToolContext) -> ToolResult:
    try:
        count = int(params.get("count") or 10)
    except ValueError:
        count = 10
    if count <= 0:
        count = 10
    return _git(ctx, "log", f"-{count}", "--oneline")


def _git_branch(params: dict, ctx: ToolContext) -> ToolResult:
    return _git(ctx, "branch", "-a")


def _git_add(params: dict, ctx: ToolContext) -> ToolResult:
    files = (params.get("files") or ".").split()
    return _git(ctx, "add", *files)


def _git_commit(params: dict, ctx: ToolContext) -> ToolResult:
    return _git(ctx, "commit", "-m", params["message"])


def _remote_args(params: dict) -> list[str]:
    args = []
    if params.get("remote"):
        args.append(params["remote"])
        if params.get("branch"):
            args.append(params["branch"])
    return args


def _git_push(params: dict, ctx: ToolContext) -> ToolResult:
    return _git(ctx, "push", *_remote_args(params))


def _git_pull(params: dict, ctx: ToolContext) -> ToolResult:
    return _git(ctx, "pull", *_remote_args(params))


# ---------------------------------------------------------------------------
# Web and system
# ---------------------------------------------------------------------------


def _fetch_url(params: dict, ctx: ToolContext) -> ToolResult:
    from .fetch import fetch_url

    return fetch_url(params["url"])


def _get_cwd(params: dict, ctx: ToolContext) -> ToolResult:
    return ToolResult.ok(str(ctx.cwd))


def _change_directory(params: dict, ctx: ToolContext) -> ToolResult:
    path = ctx.resolve(params["path"])
    if not path.is_dir():
        return ToolResult.fail(f"failed to change directory: not a directory: {path}")
    ctx.cwd = path
    return ToolResult.ok(f"Changed to: {path}")


def _system_info(params: dict, ctx: ToolContext) -> ToolResult:
    lines = [
        f"OS: {platform.system()} {platform.release()}",
        f"Architecture: {platform.machine()}",
        f"Hostname: {socket.gethostname()}",
        f"CPUs: {os.cpu_count()}",
        f"Python: {platform.python_version()}",
        f"Shell: {os.environ.get('SHELL', 'unknown')}",
        f"Working directory: {ctx.cwd}",
    ]
    return ToolResult.ok("\n".join(lines))


_HANDLERS: dict[str, Callable[[dict, ToolContext], ToolResult]] = {
    "read_file": _read_file,
    "write_file": _write_file,
    "edit_file": _edit_file,
    "list_directory": _list_directory,
    "create_directory": _create_directory,
    "delete_file": _delete_file,
    "copy_file": _copy_file,
    "move_file": _move_file,
    "find_files": _find_files,
    "grep_files": _grep_files,
    "code_search": _code_search,
    "find_todos": _find_todos,
    "count_lines": _count_lines,
    "project_tree": _project_tree,
    "run_command": _run_command,
    "git_status": _git_status,
    "git_diff": _git_diff,
    "git_log": _git_log,
    "git_branch": _git_branch,
    "git_add": _git_add,
    "git_commit": _git_commit,
    "git_push": _git_push,
    "git_pull": _git_pull,
    "fetch_url": _fetch_url,
    "get_cwd": _get_cwd,
    "change_directory": _change_directory,
    "system_info": _system_info,
}


def execute(call: ToolCall, ctx: ToolContext) -> ToolResult:
    """Run one tool call. Never raises; every failure is a failed ToolResult."""
    definition = TOOLS_BY_NAME.get(call.name)
    if definition is None:
        return ToolResult.fail(f"unknown tool: {call.name}")
    for param in definition.required:
        if not call.params.get(param):
            return ToolResult.fail(f"{param} parameter required")
    try:
        return _HANDLERS[call.name](call.params, ctx)
    except Exception as e:
        logger.exception("tool %s raised", call.name)
        return ToolResult.fail(str(e) or type(e).__name__)
