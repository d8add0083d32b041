"""Append-only session store.

Layout under ``<data_dir>/sessions/``::

    index.json          session id -> SessionInfo
    <session-id>.jsonl  one StoredMessage per line
"""

import json
import logging
import os
import threading
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path

from .report import AgentError

logger = logging.getLogger(__name__)

TITLE_MAX = 50


@dataclass
class StoredMessage:
    id: str
    session_id: str
    role: str
    content: str
    timestamp: str
    tokens: int = 0
    model: str = ""
    provider: str = ""


@dataclass
class SessionInfo:
    id: str
    title: str
    provider: str
    model: str
    created_at: str
    updated_at: str
    message_count: int = 0
    total_tokens: int = 0
    working_dir: str = ""


def _from_dict(cls, data: dict):
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class SessionStore:
    def __init__(self, data_dir: str | Path):
        self.root = Path(data_dir).expanduser() / "sessions"
        self.index_path = self.root / "index.json"
        self.current: SessionInfo | None = None
        self._lock = threading.Lock()
        self.root.mkdir(parents=True, exist_ok=True)

    # -- index ---------------------------------------------------------------

    def _load_index(self) -> dict[str, dict]:
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("session index unreadable, starting fresh: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_index(self, index: dict[str, dict]) -> None:
        tmp = self.index_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(index, indent=2), encoding="utf-8")
        os.replace(tmp, self.index_path)

    def _messages_path(self, session_id: str) -> Path:
        return self.root / f"{session_id}.jsonl"

    def resolve_id(self, prefix: str) -> str | None:
        """Expand a unique id prefix (as shown by ``list_sessions``)."""
        index = self._load_index()
        if prefix in index:
            return prefix
        matches = [sid for sid in index if sid.startswith(prefix)]
        return matches[0] if len(matches) == 1 else None

    # -- sessions ------------------------------------------------------------

    def new_session(self, provider: str, model: str, working_dir: str = "") -> SessionInfo:
        now = _now()
        info = SessionInfo(
            id=uuid.uuid4().hex,
            title=f"Chat {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            provider=provider,
            model=model,
            created_at=now,
            updated_at=now,
            working_dir=working_dir or os.getcwd(),
        )
        with self._lock:
            index = self._load_index()
            index[info.id] = asdict(info)
            self._save_index(index)
        self.current = info
        return info

    def get_session(self, session_id: str) -> SessionInfo | None:
        data = self._load_index().get(session_id)
        return _from_dict(SessionInfo, data) if data else None

    def list_sessions(self, limit: int = 20) -> list[SessionInfo]:
        sessions = [_from_dict(SessionInfo, d) for d in self._load_index().values()]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions[:limit] if limit > 0 else sessions

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            index = self._load_index()
            if session_id not in index:
                return False
            del index[session_id]
            self._save_index(index)
            self._messages_path(session_id).unlink(missing_ok=True)
        if self.current is not None and self.current.id == session_id:
            self.current = None
        return True

    # -- messages ------------------------------------------------------------

    def add_message(self, role: str, content: str, tokens: int = 0) -> StoredMessage:
        if self.current is None:
            raise AgentError("no active session")
        info = self.current
        msg = StoredMessage(
            id=uuid.uuid4().hex,
            session_id=info.id,
            role=role,
            content=content,
            timestamp=_now(),
            tokens=tokens,
            model=info.model,
            provider=info.provider,
        )
        with self._lock:
            with self._messages_path(info.id).open("a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(msg)) + "\n")
            info.message_count += 1
            info.total_tokens += tokens
            info.updated_at = msg.timestamp
            if role == "user" and info.message_count == 1:
                first_line = content.strip().splitlines()[0] if content.strip() else ""
                if first_line:
                    info.title = first_line[:TITLE_MAX]
            index = self._load_index()
            index[info.id] = asdict(info)
            self._save_index(index)
        return msg

    def get_messages(self, session_id: str | None = None) -> list[StoredMessage]:
        """Read a session's messages in order, skipping corrupt lines."""
        if session_id is None:
            if self.current is None:
                return []
            session_id = self.current.id
        path = self._messages_path(session_id)
        messages = []
        try:
            with path.open(encoding="utf-8") as f:
                for lineno, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        messages.append(_from_dict(StoredMessage, json.loads(line)))
                    except (ValueError, TypeError, AttributeError):
                        logger.warning("%s:%d: skipping corrupt record", path, lineno)
        except FileNotFoundError:
            pass
        return messages

    def load_session(self, session_id: str) -> list[StoredMessage]:
        """Make ``session_id`` current and return its messages."""
        info = self.get_session(session_id)
        if info is None:
            raise AgentError(f"session not found: {session_id}")
        self.current = info
        return self.get_messages(session_id)

    def export_session(self, session_id: str) -> str:
        info = self.get_session(session_id)
        if info is None:
            raise AgentError(f"session not found: {session_id}")
        export = {
            "session": asdict(info),
            "messages": [asdict(m) for m in self.get_messages(session_id)],
        }
        return json.dumps(export, indent=2, ensure_ascii=False)

    def stats(self) -> dict:
        sessions = self.list_sessions(limit=0)
        total_messages = sum(s.message_count for s in sessions)
        total_tokens = sum(s.total_tokens for s in sessions)
        models = Counter(s.model for s in sessions if s.model)
        return {
            "total_sessions": len(sessions),
            "total_messages": total_messages,
            "total_tokens": total_tokens,
            "average_tokens": total_tokens / total_messages if total_messages else 0.0,
            "most_used_model": models.most_common(1)[0][0] if models else "",
        }
