import json
from typing import Any, Dict, List

import pytest

from mercle_demo.config import DemoConfig
from mercle_demo.transport import HttpResponse


def json_response(status: int, payload: Any) -> HttpResponse:
    return HttpResponse(status, "application/json", json.dumps(payload))


class FakeTransport:
    def __init__(self, post: HttpResponse | Exception | None = None, get: HttpResponse | Exception | None = None):
        self.post_response = post
        self.get_response = get
        self.calls: List[Dict[str, Any]] = []

    def post_json(self, url, data):
        self.calls.append({"method": "POST", "url": url, "data": data})
        return self._reply(self.post_response)

    def get(self, url, headers=None):
        self.calls.append({"method": "GET", "url": url, "headers": headers or {}})
        return self._reply(self.get_response)

    @staticmethod
    def _reply(response):
        if response is None:
            raise AssertionError("unexpected network call")
        if isinstance(response, Exception):
            raise response
        return response


class RecordingPresenter:
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def navigate(self, url):
        self.events.append(("navigate", url))

    def replace_location(self, path):
        self.events.append(("replace_location", path))

    def set_loading_text(self, text):
        self.events.append(("loading", text))

    def show_welcome(self):
        self.events.append(("welcome",))

    def show_error(self, message, details=None):
        self.events.append(("error", message, details))

    def show_success(self, profile, tokens):
        self.events.append(("success", profile, tokens))

    def named(self, name):
        return [event for event in self.events if event[0] == name]


@pytest.fixture
def config() -> DemoConfig:
    return DemoConfig(
        client_id="app_test",
        client_secret="secret_test",
        redirect_uri="https://demo.example.com/mercle/",
        auth_endpoint="https://id.example.com/oauth/authorize",
        token_endpoint="https://oauth.example.com/token",
        userinfo_endpoint="https://oauth.example.com/userinfo",
        timeout=5,
        session_secret="test-session-secret",
    )


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()
