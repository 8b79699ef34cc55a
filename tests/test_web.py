import json

import pytest
from conftest import FakeTransport, json_response

from mercle_demo.sequencer import TOKEN_KEY
from mercle_demo.session_store import SESSION_ID_KEY
from mercle_demo.state_guard import STATE_KEY
from mercle_demo.web import create_app, format_details, profile_fields


def _client(config, transport=None, debug_console=False):
    app = create_app(config, transport=transport or FakeTransport(), debug_console=debug_console)
    app.testing = True
    return app.test_client()


def _stored(client):
    with client.session_transaction() as sess:
        session_id = sess.setdefault(SESSION_ID_KEY, "test-session")
    return client.application.extensions["mercle_sessions"].bucket(session_id)


def test_profile_fields_orders_well_known_claims_first():
    fields = profile_fields(
        {"given_name": "Ada", "sub": "u1", "verified": True, "address": {"country": "NL"}}
    )
    assert [f["label"] for f in fields] == ["User ID", "Status", "Email", "Name", "Given name", "Address"]
    assert fields[1]["badge"] is True
    assert fields[2]["value"] == "Not provided"
    assert fields[5]["value"] == '{"country": "NL"}'


def test_profile_fields_unverified():
    fields = profile_fields({})
    assert fields[0]["value"] == "N/A"
    assert fields[1] == {"label": "Status", "value": "Not Verified", "badge": False}


def test_format_details():
    assert format_details(None) is None
    assert format_details("plain") == "plain"
    assert format_details({"a": 1}) == '{\n  "a": 1\n}'


def test_plain_load_shows_welcome(config):
    transport = FakeTransport()
    response = _client(config, transport).get("/")
    assert response.status_code == 200
    assert b'id="welcomeScreen"' in response.data
    assert transport.calls == []


def test_verify_redirects_to_authorization_endpoint(config):
    client = _client(config)
    response = client.post("/verify")
    assert response.status_code == 302
    location = response.headers["Location"]
    assert location.startswith(config.auth_endpoint + "?")
    assert location.endswith("state=" + _stored(client)[STATE_KEY])


def test_verify_without_client_id_shows_configuration_error(config):
    response = _client(config.with_overrides(client_id="")).post("/verify")
    assert response.status_code == 500
    assert b"Configuration Error" in response.data


def test_provider_error_page(config):
    response = _client(config).get("/?error=access_denied&error_description=User+cancelled")
    assert b"OAuth Error: access_denied" in response.data
    assert b"User cancelled" in response.data
    assert b'id="retryBtn"' in response.data


def test_state_mismatch_page(config):
    transport = FakeTransport()
    client = _client(config, transport)
    _stored(client)[STATE_KEY] = "Y"
    response = client.get("/mercle/?code=abc123&state=X")
    assert b"Security Error" in response.data
    assert transport.calls == []
    assert STATE_KEY not in _stored(client)


def test_full_flow_renders_verified_profile(config):
    transport = FakeTransport(
        post=json_response(200, {"access_token": "tok1", "token_type": "Bearer"}),
        get=json_response(200, {"sub": "u1", "verified": True, "email": "a@b.com"}),
    )
    client = _client(config, transport)
    _stored(client)[STATE_KEY] = "S"
    response = client.get("/mercle/?code=abc123&state=S")
    body = response.get_data(as_text=True)
    assert 'id="successScreen"' in body
    assert "Verified" in body and 'class="verified-badge"' in body
    assert "a@b.com" in body
    assert 'window.history.replaceState({}, document.title, "/mercle/")' in body
    assert transport.calls[1]["headers"]["Authorization"] == "Bearer tok1"
    assert json.loads(_stored(client)[TOKEN_KEY]) == {"access_token": "tok1", "token_type": "Bearer"}


def test_profile_values_are_escaped(config):
    transport = FakeTransport(
        post=json_response(200, {"access_token": "tok1"}),
        get=json_response(200, {"sub": "u1", "name": "<script>alert(1)</script>"}),
    )
    client = _client(config, transport)
    _stored(client)[STATE_KEY] = "S"
    body = client.get("/?code=abc123&state=S").get_data(as_text=True)
    assert "<script>alert(1)</script>" not in body
    assert "&lt;script&gt;" in body


def test_logout_clears_session(config):
    client = _client(config)
    _stored(client).update({TOKEN_KEY: "{}", STATE_KEY: "S"})
    for _ in range(2):
        response = client.post("/logout")
        assert response.status_code == 302
        assert response.headers["Location"] == "/mercle/"
        assert _stored(client) == {}


def test_retry_redirects_home(config):
    response = _client(config).post("/retry")
    assert response.status_code == 302
    assert response.headers["Location"] == "/"


def test_installable_app_assets(config):
    client = _client(config)
    manifest = client.get("/manifest.webmanifest")
    assert manifest.mimetype == "application/manifest+json"
    assert manifest.get_json()["display"] == "standalone"
    worker = client.get("/sw.js")
    assert worker.mimetype == "application/javascript"
    assert b"addEventListener('fetch'" in worker.data
    assert client.get("/icon.svg").mimetype == "image/svg+xml"
    assert b"beforeinstallprompt" in client.get("/").data


def test_debug_console_is_opt_in(config):
    assert _client(config).get("/debug").status_code == 404


def test_debug_console_redacts_config(config):
    client = _client(config, debug_console=True)
    _stored(client)[TOKEN_KEY] = json.dumps({"access_token": "tok1"})
    payload = client.get("/debug").get_json()
    assert "Development-only" in payload["warning"]
    assert payload["config"]["client_secret"] == "***test"
    assert payload["tokens"] == {"access_token": "tok1"}
    assert client.post("/debug/clear").status_code == 302
    with client.session_transaction() as sess:
        assert SESSION_ID_KEY not in sess
    assert len(client.application.extensions["mercle_sessions"]) == 0


def test_client_secret_warning_is_logged(config, caplog):
    with caplog.at_level("WARNING", logger="mercle_demo.web"):
        create_app(config)
    assert "client secret" in caplog.text


@pytest.mark.parametrize("path", ["/", "/mercle/"])
def test_both_entry_paths_serve_the_page(config, path):
    assert _client(config).get(path).status_code == 200


def test_large_token_set_stays_server_side_and_callback_cannot_replay(config):
    token_payload = {
        "access_token": "a" * 1500,
        "id_token": "i" * 2000,
        "refresh_token": "r" * 1200,
        "token_type": "Bearer",
    }
    transport = FakeTransport(
        post=json_response(200, token_payload),
        get=json_response(200, {"sub": "u1", "verified": True}),
    )
    client = _client(config, transport)
    _stored(client)[STATE_KEY] = "S"
    response = client.get("/mercle/?code=c&state=S")
    assert b'id="successScreen"' in response.data
    assert len(json.dumps(token_payload)) > 4096
    for header in response.headers.getlist("Set-Cookie"):
        assert len(header) < 512
    assert json.loads(_stored(client)[TOKEN_KEY]) == token_payload

    replay = client.get("/mercle/?code=c&state=S")
    assert b"Security Error" in replay.data
    assert len(transport.calls) == 2
