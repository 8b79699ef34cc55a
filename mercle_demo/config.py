"""Client configuration loaded from ``.env`` and command-line overrides."""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from dotenv import dotenv_values

DEFAULT_ENV_FILE = ".env"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8000/"
DEFAULT_TIMEOUT = 15
AUTH_ENDPOINT = "https://id.mercle.ai/oauth/authorize"
TOKEN_ENDPOINT = "https://oauth.mercle.ai/token"
USERINFO_ENDPOINT = "https://oauth.mercle.ai/userinfo"

_SECRET_FIELDS = ("client_secret", "session_secret")


@dataclass(frozen=True)
class DemoConfig:
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    auth_endpoint: str = AUTH_ENDPOINT
    token_endpoint: str = TOKEN_ENDPOINT
    userinfo_endpoint: str = USERINFO_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    session_secret: str | None = None

    def require_client(self) -> None:
        missing = [
            label
            for label, present in (
                ("client_id", bool(self.client_id)),
                ("redirect_uri", bool(self.redirect_uri)),
            )
            if not present
        ]
        if missing:
            raise RuntimeError(f"Missing required configuration values: {', '.join(missing)}.")

    def redacted(self) -> Dict[str, Any]:
        """Return the configuration as a mapping safe for display."""
        values = asdict(self)
        for name in _SECRET_FIELDS:
            if values[name]:
                values[name] = _mask(values[name])
        return values

    def with_overrides(self, **overrides: Any) -> "DemoConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _mask(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return "***"
    return "***" + value[-visible:]


def determine_env_file(argv: list[str]) -> str:
    env_file = DEFAULT_ENV_FILE
    for idx, arg in enumerate(argv):
        if arg in ("--env-file", "-e"):
            if idx + 1 < len(argv):
                env_file = argv[idx + 1]
        elif arg.startswith("--env-file="):
            env_file = arg.split("=", 1)[1]
        elif arg.startswith("-e="):
            env_file = arg.split("=", 1)[1]
    return env_file


def config_from_mapping(values: Mapping[str, str | None]) -> DemoConfig:
    timeout_raw = values.get("timeout")
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
    except ValueError as exc:
        raise RuntimeError(f"Invalid timeout value: {timeout_raw!r}") from exc
    return DemoConfig(
        client_id=values.get("client_id") or None,
        client_secret=values.get("client_secret") or None,
        redirect_uri=values.get("redirect_uri") or DEFAULT_REDIRECT_URI,
        auth_endpoint=values.get("auth_endpoint") or AUTH_ENDPOINT,
        token_endpoint=values.get("token_endpoint") or TOKEN_ENDPOINT,
        userinfo_endpoint=values.get("userinfo_endpoint") or USERINFO_ENDPOINT,
        timeout=timeout,
        session_secret=values.get("session_secret") or None,
    )


def load_config(env_file: str = DEFAULT_ENV_FILE) -> DemoConfig:
    path = Path(env_file)
    if not path.exists():
        return DemoConfig()
    return config_from_mapping(dotenv_values(path))
