import json
import re
import threading
from datetime import datetime
from pathlib import Path

from config import CHAT_LOG_DIR, COMPANY_INFO_PATH

_VALID_USER_ID = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")

FEEDBACK_ACTIONS = ("like", "dislike", "report")
RECENT_REPORTS_LIMIT = 3


class ChatLogStore:
    """
    Per-user chat log, one JSON file per user id:
      {"userId", "messages": [...], "createdAt", "updatedAt"}
    Messages are stored as sent by the client; feedback lives under
    message["actions"].
    """

    def __init__(self, directory: str | Path = CHAT_LOG_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, user_id: str) -> Path | None:
        if not user_id or not _VALID_USER_ID.match(user_id) or user_id in (".", ".."):
            return None
        resolved = (self.directory / f"{user_id}.json").resolve()
        if not str(resolved).startswith(str(self.directory.resolve())):
            return None
        return resolved

    def _read(self, path: Path) -> dict | None:
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def _write(self, path: Path, doc: dict):
        doc["updatedAt"] = datetime.now().isoformat()
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(doc, f)
        tmp.replace(path)

    def find_by_user(self, user_id: str) -> dict | None:
        path = self._path(user_id)
        if path is None:
            return None
        with self._lock:
            return self._read(path)

    def append_messages(self, user_id: str, messages: list) -> dict:
        """Upsert the user's log and append messages in order."""
        path = self._path(user_id)
        if path is None:
            raise ValueError(f"Invalid userId: {user_id!r}")
        with self._lock:
            doc = self._read(path) or {
                "userId": user_id,
                "messages": [],
                "createdAt": datetime.now().isoformat(),
            }
            doc["messages"].extend(messages or [])
            self._write(path, doc)
        print(f"[CHAT_LOG] appended user={user_id} count={len(messages or [])} total={len(doc['messages'])}")
        return doc

    def set_feedback(self, user_id: str, message_id: str, action: str, report_message: str = None) -> bool:
        """Apply like/dislike/report to one message. False when the message is not in the log."""
        if action not in FEEDBACK_ACTIONS:
            raise ValueError(f"Invalid action: {action!r}")
        path = self._path(user_id)
        if path is None:
            return False
        with self._lock:
            doc = self._read(path)
            if not doc:
                return False
            message = next(
                (m for m in doc.get("messages", []) if isinstance(m, dict) and m.get("messageId") == message_id),
                None,
            )
            if message is None:
                return False

            actions = message.setdefault("actions", {})
            if action == "like":
                actions["like"] = True
                actions["dislike"] = False
            elif action == "dislike":
                actions["dislike"] = True
                actions["like"] = False
            else:
                actions["report"] = True
                actions["reportMessage"] = report_message or ""
            self._write(path, doc)
        print(f"[CHAT_LOG] feedback user={user_id} message={message_id} action={action}")
        return True

    def recent_reports(self, user_id: str, limit: int = RECENT_REPORTS_LIMIT) -> list:
        doc = self.find_by_user(user_id)
        if not doc:
            return []
        reports = [
            m["actions"]["reportMessage"]
            for m in doc.get("messages", [])
            if isinstance(m, dict)
            and isinstance(m.get("actions"), dict)
            and m["actions"].get("report")
            and m["actions"].get("reportMessage")
        ]
        return reports[-limit:]


class CompanyInfoStore:
    """Company documents keyed by name, stored in one JSON file."""

    def __init__(self, path: str | Path = COMPANY_INFO_PATH):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def get(self, name: str) -> dict | None:
        with self._lock:
            return self._load().get(name)

    def upsert(self, doc: dict):
        if not doc.get("name"):
            raise ValueError("Company document needs a name")
        with self._lock:
            data = self._load()
            data[doc["name"]] = doc
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)


class LazyStore:
    """
    Process-wide handle that builds its store on first use.
    A failed build is printed and retried on the next acquire.
    """

    def __init__(self, factory):
        self._factory = factory
        self._store = None
        self._lock = threading.Lock()

    def acquire(self):
        if self._store is not None:
            return self._store
        with self._lock:
            if self._store is None:
                try:
                    self._store = self._factory()
                except OSError as e:
                    print(f"[CHAT_LOG] store unavailable: {e}")
                    return None
            return self._store


chat_log = LazyStore(ChatLogStore)
company_info = LazyStore(CompanyInfoStore)
