"""Tool-call micro-format embedded in model text.

Calls are written by the model as::

    <tool_call>
    {"name": "read_file", "params": {"path": "main.py"}}
    </tool_call>

and results go back as ``<tool_result name="...">`` blocks inside a single
synthetic user message.
"""

import json
import re
from typing import Iterator

from .tools import ToolCall, ToolResult

# A block never contains another opener, so an unclosed block cannot swallow
# the next one.
_CALL_RE = re.compile(r"<tool_call>((?:(?!<tool_call>).)*?)</tool_call>", re.DOTALL)
# An opener with no closer before the next opener or the end of the text.
_UNCLOSED_RE = re.compile(r"<tool_call>(?:(?!</?tool_call>).)*(?=<tool_call>|\Z)", re.DOTALL)
_STRAY_TAG_RE = re.compile(r"</?tool_call>")
_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)
_BLANK_RUN_RE = re.compile(r"\n{3,}")

CONTINUE_INSTRUCTION = (
    "Now provide your response based on these results. "
    "If you need more information, use more tools. "
    "Otherwise, explain what you found."
)


def _param_to_str(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def _parse_payload(payload: str) -> ToolCall | None:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    if not isinstance(name, str) or not name:
        return None
    raw = data.get("params")
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        return None
    params = {}
    for key, value in raw.items():
        converted = _param_to_str(value)
        if converted is not None:
            params[str(key)] = converted
    return ToolCall(name=name, params=params)


def iter_calls(text: str) -> Iterator[ToolCall]:
    """Yield every parseable tool call in document order.

    Blocks whose payload is not a JSON object with a string ``name`` are
    skipped; they never hide the blocks around them.
    """
    for match in _CALL_RE.finditer(text):
        call = _parse_payload(match.group(1).strip())
        if call is not None:
            yield call


def extract_calls(text: str) -> list[ToolCall]:
    return list(iter_calls(text))


def strip_calls(text: str) -> str:
    """Remove all tool-call blocks, parseable or not, for display."""
    text = _UNCLOSED_RE.sub("", text)
    text = _CALL_RE.sub("", text)
    text = _STRAY_TAG_RE.sub("", text)
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def strip_think(text: str) -> str:
    """Remove ``<think>...</think>`` reasoning spans."""
    text = _THINK_RE.sub("", text)
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def display_text(text: str) -> str:
    """The portion of a model response that is shown to the user."""
    return strip_think(strip_calls(text))


def format_result(call: ToolCall, result: ToolResult) -> str:
    if result.success:
        body = result.output
    else:
        body = f"Error: {result.error}"
        if result.output:
            body += f"\n{result.output}"
    return f'<tool_result name="{call.name}">\n{body}\n</tool_result>'


def tool_results_message(formatted: list[str]) -> str:
    """Build the synthetic user message that carries a batch of results."""
    parts = ["Tool results:\n"]
    for block in formatted:
        parts.append(block + "\n\n")
    parts.append("\n\n" + CONTINUE_INSTRUCTION)
    return "".join(parts)
