from __future__ import annotations

import hmac
import logging
import secrets
from typing import Any, MutableMapping

from .errors import SecurityError

STATE_KEY = "mercle_oauth_state"
STATE_BYTES = 32

logger = logging.getLogger(__name__)


class StateGuard:
    """Single-use anti-forgery token kept in the session store."""

    def __init__(self, store: MutableMapping[str, Any]) -> None:
        self._store = store

    def generate(self) -> str:
        token = secrets.token_hex(STATE_BYTES)
        self._store[STATE_KEY] = token
        return token

    def verify(self, received: str | None) -> None:
        # Consumed on every call, matching or not.
        saved = self._store.pop(STATE_KEY, None)
        if not saved or received is None:
            logger.warning("Callback state rejected: %s", "no stored state" if not saved else "no state returned")
            raise SecurityError()
        if not hmac.compare_digest(saved.encode("utf-8"), received.encode("utf-8")):
            logger.warning("Callback state rejected: mismatch")
            raise SecurityError()

    def pending(self) -> bool:
        return bool(self._store.get(STATE_KEY))

    def discard(self) -> None:
        self._store.pop(STATE_KEY, None)
