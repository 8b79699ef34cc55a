"""Server-side storage for the per-browser-session values.

The session cookie only carries an opaque id; the anti-forgery state and the
token set stay in process memory, so token size never touches the cookie.
"""
from __future__ import annotations

import secrets
import threading
from typing import Any, Dict

SESSION_ID_KEY = "sid"


class ServerSessionStore:
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def new_id() -> str:
        return secrets.token_urlsafe(24)

    def bucket(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            return self._data.setdefault(session_id, {})

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._data)
