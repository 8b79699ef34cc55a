"""Failures that end a verification attempt.

Every class carries a short ``message`` for the user plus an optional
``details`` payload (a string or a JSON-compatible mapping).
"""
from __future__ import annotations

import json
from typing import Any, Dict


class VerificationError(RuntimeError):
    message = "Verification Failed"

    def __init__(self, details: Any = None) -> None:
        super().__init__(details if details is not None else self.message)
        self.details = details


class ProviderError(VerificationError):
    """The identity provider reported a failure on the redirect."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        self.message = f"OAuth Error: {error}"
        super().__init__(description)


class SecurityError(VerificationError):
    """The callback's state did not match the stored anti-forgery token."""

    message = "Security Error"

    def __init__(
        self, details: str = "State mismatch - possible CSRF attack. Please try again."
    ) -> None:
        super().__init__(details)


class ExchangeError(VerificationError):
    """An endpoint answered with a non-success HTTP status."""

    def __init__(self, stage: str, status: int, body: Dict[str, Any]) -> None:
        self.stage = stage
        self.status = status
        self.body = body
        encoded = json.dumps(body, separators=(",", ":"))
        super().__init__(f"{stage} failed: {status} - {encoded}")


class TransportFault(VerificationError):
    """The HTTP call itself failed or returned something unusable."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
