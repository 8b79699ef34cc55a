from __future__ import annotations

import http.client
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest

from .errors import TransportFault

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    status: int
    content_type: str
    payload: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def encode_query(params: Dict[str, Any]) -> str:
    safe_params = {k: v for k, v in params.items() if v is not None}
    return urlparse.urlencode(safe_params, quote_via=urlparse.quote)


def parse_error_body(response: HttpResponse) -> Dict[str, Any]:
    """Best-effort decode of an error body; anything but a JSON object becomes ``{}``."""
    try:
        parsed = json.loads(response.payload)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def decode_json_object(response: HttpResponse) -> Dict[str, Any]:
    try:
        parsed = json.loads(response.payload)
    except ValueError as exc:
        raise TransportFault(
            f"Malformed JSON response (HTTP {response.status}, "
            f"{response.content_type or 'no content type'}): {exc}"
        ) from exc
    if not isinstance(parsed, dict):
        raise TransportFault(
            f"Expected a JSON object (HTTP {response.status}), got {type(parsed).__name__}"
        )
    return parsed


class HttpTransport:
    """Blocking JSON-over-HTTP calls used by the exchange sequence."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout

    def post_json(self, url: str, data: Dict[str, Any]) -> HttpResponse:
        req = urlrequest.Request(
            url,
            data=json.dumps(data).encode("utf-8"),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        return self._execute(req)

    def get(self, url: str, headers: Dict[str, str] | None = None) -> HttpResponse:
        req = urlrequest.Request(url, headers={"Accept": "application/json", **(headers or {})})
        return self._execute(req)

    def _execute(self, req: urlrequest.Request) -> HttpResponse:
        try:
            with urlrequest.urlopen(req, timeout=self.timeout) as resp:
                payload = resp.read().decode("utf-8", errors="replace")
                return HttpResponse(
                    status=resp.status,
                    content_type=resp.headers.get("Content-Type", ""),
                    payload=payload,
                )
        except urlerror.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            logger.debug("HTTP %s from %s %s", exc.code, req.get_method(), req.full_url)
            return HttpResponse(
                status=exc.code,
                content_type=exc.headers.get("Content-Type", "") if exc.headers else "",
                payload=body,
            )
        except urlerror.URLError as exc:
            raise TransportFault(f"Failed to reach {req.full_url}: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise TransportFault(f"Request to {req.full_url} failed: {exc}") from exc
