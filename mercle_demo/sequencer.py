"""Authorization Code exchange sequence.

The sequence is linear: build the authorization request and hand the browser
off to the provider, then on the way back parse the callback, check the
anti-forgery state, redeem the code at the token endpoint and read the profile
with the resulting bearer token.  The sequencer never renders anything; it
drives a presenter object supplied by the caller.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, MutableMapping, Protocol, Tuple
from urllib import parse as urlparse

from .config import DemoConfig
from .errors import ExchangeError, ProviderError, TransportFault, VerificationError
from .state_guard import StateGuard
from .transport import HttpResponse, HttpTransport, decode_json_object, encode_query, parse_error_body

TOKEN_KEY = "mercle_tokens"
SCOPES: Tuple[str, ...] = ("openid", "profile")
RESPONSE_TYPE = "code"

logger = logging.getLogger(__name__)


class FlowState(enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING_CODE = "exchanging_code"
    FETCHING_PROFILE = "fetching_profile"
    SUCCESS = "success"
    FAILED = "failed"


class Presenter(Protocol):
    def navigate(self, url: str) -> None: ...

    def replace_location(self, path: str) -> None: ...

    def set_loading_text(self, text: str) -> None: ...

    def show_welcome(self) -> None: ...

    def show_error(self, message: str, details: Any = None) -> None: ...

    def show_success(self, profile: Dict[str, Any], tokens: Dict[str, Any]) -> None: ...


class Transport(Protocol):
    def post_json(self, url: str, data: Dict[str, Any]) -> HttpResponse: ...

    def get(self, url: str, headers: Dict[str, str] | None = None) -> HttpResponse: ...


@dataclass(frozen=True)
class AuthorizationRequest:
    client_id: str
    redirect_uri: str
    state: str
    scopes: Tuple[str, ...] = SCOPES
    response_type: str = RESPONSE_TYPE

    def to_url(self, auth_endpoint: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": self.response_type,
            "scope": " ".join(self.scopes),
            "state": self.state,
        }
        return f"{auth_endpoint}?{encode_query(params)}"


@dataclass(frozen=True)
class CallbackSuccess:
    code: str
    state: str | None


@dataclass(frozen=True)
class CallbackProviderError:
    error: str
    description: str | None


class NoCallback:
    """The page was opened directly rather than through the provider redirect."""


NO_CALLBACK = NoCallback()

CallbackResult = CallbackSuccess | CallbackProviderError | NoCallback


def parse_callback(query: Mapping[str, str]) -> CallbackResult:
    error = query.get("error")
    if error:
        return CallbackProviderError(error=error, description=query.get("error_description"))
    code = query.get("code")
    if not code:
        return NO_CALLBACK
    return CallbackSuccess(code=code, state=query.get("state"))


def mask_token(value: str | None) -> str | None:
    if not value:
        return None
    return "***" + value[-10:]


class ExchangeSequencer:
    def __init__(
        self,
        config: DemoConfig,
        store: MutableMapping[str, Any],
        presenter: Presenter,
        transport: Transport | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.presenter = presenter
        self.transport = transport or HttpTransport(timeout=config.timeout)
        self.state_guard = StateGuard(store)
        self.state = FlowState.IDLE
        self.error: VerificationError | None = None
        self.tokens: Dict[str, Any] | None = None
        self.profile: Dict[str, Any] | None = None

    @property
    def clean_path(self) -> str:
        return urlparse.urlparse(self.config.redirect_uri).path or "/"

    def begin_verification(self) -> None:
        self.config.require_client()
        self.state = FlowState.AWAITING_REDIRECT
        request = AuthorizationRequest(
            client_id=self.config.client_id or "",
            redirect_uri=self.config.redirect_uri,
            state=self.state_guard.generate(),
        )
        url = request.to_url(self.config.auth_endpoint)
        logger.info("Redirecting to: %s", url)
        self.presenter.navigate(url)

    def handle_callback(self, query: Mapping[str, str]) -> bool:
        """Process the current page's query string.

        Returns ``False`` when no callback is in progress, ``True`` otherwise
        (whether the flow succeeded or failed).
        """
        result = parse_callback(query)
        if isinstance(result, NoCallback):
            return False

        self.state = FlowState.AWAITING_CALLBACK
        if isinstance(result, CallbackProviderError):
            self._fail(ProviderError(result.error, result.description))
            return True

        try:
            self.state_guard.verify(result.state)
        except VerificationError as exc:
            self._fail(exc)
            return True

        try:
            tokens = self._exchange_code(result.code)
            profile = self._fetch_profile(tokens)
        except VerificationError as exc:
            self._fail(exc)
            return True
        except Exception as exc:  # noqa: BLE001
            self._fail(TransportFault(str(exc) or exc.__class__.__name__))
            return True

        self.profile = profile
        self.state = FlowState.SUCCESS
        logger.info(
            "Verification succeeded for sub=%s tokens=%s",
            profile.get("sub"),
            {
                "access_token": mask_token(tokens.get("access_token")),
                "id_token": mask_token(tokens.get("id_token")),
            },
        )
        self.presenter.show_success(profile, tokens)
        self.presenter.replace_location(self.clean_path)
        return True

    def logout(self) -> None:
        self.store.pop(TOKEN_KEY, None)
        self.state_guard.discard()
        self.tokens = None
        self.profile = None
        self.error = None
        self.state = FlowState.IDLE
        self.presenter.replace_location(self.clean_path)
        self.presenter.show_welcome()

    def retry(self) -> None:
        self.error = None
        self.state = FlowState.IDLE
        self.presenter.show_welcome()

    def stored_tokens(self) -> Dict[str, Any] | None:
        raw = self.store.get(TOKEN_KEY)
        return json.loads(raw) if raw else None

    def _exchange_code(self, code: str) -> Dict[str, Any]:
        self.state = FlowState.EXCHANGING_CODE
        self._progress("Exchanging authorization code...")
        response = self.transport.post_json(
            self.config.token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
            },
        )
        if not response.ok:
            raise ExchangeError("Token exchange", response.status, parse_error_body(response))
        tokens = decode_json_object(response)
        if not isinstance(tokens.get("access_token"), str) or not tokens["access_token"]:
            raise TransportFault("Token response did not include an access_token")
        self.tokens = tokens
        self.store[TOKEN_KEY] = json.dumps(tokens)
        return tokens

    def _fetch_profile(self, tokens: Dict[str, Any]) -> Dict[str, Any]:
        self.state = FlowState.FETCHING_PROFILE
        self._progress("Fetching user information...")
        response = self.transport.get(
            self.config.userinfo_endpoint,
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )
        if not response.ok:
            raise ExchangeError("User info fetch", response.status, parse_error_body(response))
        return decode_json_object(response)

    def _progress(self, text: str) -> None:
        logger.info(text)
        self.presenter.set_loading_text(text)

    def _fail(self, exc: VerificationError) -> None:
        self.error = exc
        self.state = FlowState.FAILED
        logger.error("OAuth flow error: %s: %s", exc.message, exc.details)
        self.presenter.show_error(exc.message, exc.details)
