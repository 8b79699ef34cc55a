import pytest

from mercle_demo.errors import SecurityError
from mercle_demo.state_guard import STATE_KEY, StateGuard


def test_generate_stores_64_hex_chars():
    store = {}
    token = StateGuard(store).generate()
    assert store[STATE_KEY] == token
    assert len(token) == 64
    int(token, 16)


def test_generate_overwrites_unconsumed_token():
    store = {}
    guard = StateGuard(store)
    first = guard.generate()
    second = guard.generate()
    assert first != second
    assert store[STATE_KEY] == second


def test_verify_accepts_exact_value_only_once():
    store = {}
    guard = StateGuard(store)
    token = guard.generate()
    guard.verify(token)
    assert STATE_KEY not in store
    with pytest.raises(SecurityError):
        guard.verify(token)


@pytest.mark.parametrize("received", ["wrong", "", None])
def test_verify_rejects_other_values_and_consumes_token(received):
    store = {}
    guard = StateGuard(store)
    token = guard.generate()
    with pytest.raises(SecurityError):
        guard.verify(received)
    assert STATE_KEY not in store
    with pytest.raises(SecurityError):
        guard.verify(token)


def test_verify_without_stored_token_fails():
    with pytest.raises(SecurityError) as excinfo:
        StateGuard({}).verify("anything")
    assert excinfo.value.message == "Security Error"
    assert "CSRF" in excinfo.value.details


def test_discard_and_pending():
    store = {}
    guard = StateGuard(store)
    assert not guard.pending()
    guard.generate()
    assert guard.pending()
    guard.discard()
    guard.discard()
    assert store == {}
