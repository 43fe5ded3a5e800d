import pytest

from credgate.auth.gate import (
    MSG_CONFIRM_PASSWORD,
    MSG_ENTER_NEW_PASSWORD,
    MSG_ENTER_PASSWORD,
    MSG_ENTER_USERNAME,
    MSG_INVALID_CREDENTIALS,
    MSG_PASSWORD_MISMATCH,
    MSG_PASSWORD_TOO_SHORT,
    Authenticated,
    CredentialGate,
    InvalidCredentials,
    RedirectSignal,
    ValidationError,
)
from credgate.auth.passwords import hash_password, verify_password
from credgate.auth.session import SessionState
from credgate.auth.users import StoreUnavailable


class SpyStore:
    """Wraps a user store and records every call made to it."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    def find_by_username(self, username):
        self.calls.append(("find_by_username", username))
        return self.inner.find_by_username(username)

    def update_password_hash(self, user_id, new_hash):
        self.calls.append(("update_password_hash", user_id))
        return self.inner.update_password_hash(user_id, new_hash)

    def add_user(self, username, password_hash):
        return self.inner.add_user(username, password_hash)


class DownStore:
    def find_by_username(self, username):
        raise StoreUnavailable("down")

    def update_password_hash(self, user_id, new_hash):
        raise StoreUnavailable("down")

    def add_user(self, username, password_hash):
        raise StoreUnavailable("down")


@pytest.fixture()
def spy(sql_store):
    return SpyStore(sql_store)


@pytest.fixture()
def spy_gate(spy, sessions):
    return CredentialGate(spy, sessions)


def _login(gate) -> SessionState:
    result = gate.authenticate("alice", "correct-pass")
    assert isinstance(result, Authenticated)
    return result.session


# --- authenticate ---


@pytest.mark.parametrize(
    "username,password,fields",
    [
        ("", "pw", {"username"}),
        ("   ", "pw", {"username"}),
        ("alice", "", {"password"}),
        ("alice", " \t ", {"password"}),
        ("", "", {"username", "password"}),
        (None, None, {"username", "password"}),
    ],
)
def test_empty_fields_are_validation_errors_without_store_access(spy_gate, spy, alice, username, password, fields):
    result = spy_gate.authenticate(username, password)
    assert isinstance(result, ValidationError)
    assert set(result.errors) == fields
    assert spy.calls == []
    assert "password" not in result.values


def test_validation_messages_and_username_echo(gate):
    result = gate.authenticate("  bob  ", "")
    assert result.errors == {"password": MSG_ENTER_PASSWORD}
    assert result.values == {"username": "bob"}
    result = gate.authenticate("", "x")
    assert result.errors == {"username": MSG_ENTER_USERNAME}


def test_correct_credentials_authenticate(gate, alice, sessions):
    result = gate.authenticate("alice", "correct-pass")
    assert isinstance(result, Authenticated)
    s = result.session
    assert s.logged_in is True
    assert s.user_id == alice.id
    assert s.username == "alice"
    assert sessions.read(s.token) == s


def test_surrounding_whitespace_is_trimmed(gate, alice):
    assert isinstance(gate.authenticate("  alice ", " correct-pass "), Authenticated)


@pytest.mark.parametrize(
    "username,password",
    [("alice", "wrong"), ("nobody", "correct-pass"), ("Alice", "correct-pass"), ("nobody", "wrong")],
)
def test_mismatch_is_one_generic_error(gate, alice, sessions, username, password):
    result = gate.authenticate(username, password)
    assert result == InvalidCredentials()
    assert result.message == MSG_INVALID_CREDENTIALS
    assert len(sessions) == 0


def test_unknown_user_and_wrong_password_are_indistinguishable(gate, alice):
    assert gate.authenticate("nobody", "x") == gate.authenticate("alice", "x")


def test_store_failure_propagates(sessions):
    gate = CredentialGate(DownStore(), sessions)
    with pytest.raises(StoreUnavailable):
        gate.authenticate("alice", "correct-pass")
    assert len(sessions) == 0


# --- require_session ---


@pytest.mark.parametrize("token", ["", "unknown-token"])
def test_require_session_without_login_redirects(gate, token):
    first = gate.require_session(token)
    second = gate.require_session(token)
    assert first == RedirectSignal(target="/login")
    assert second == first


def test_require_session_after_login(gate, alice):
    s = _login(gate)
    assert gate.require_session(s.token) == s


def test_require_session_rejects_logged_out_flag(gate, sessions):
    class FlagOffStore:
        def read(self, token):
            return SessionState(token=token, logged_in=False, user_id=1, username="alice")

    gate = CredentialGate(gate.users, FlagOffStore())
    assert isinstance(gate.require_session("t"), RedirectSignal)


# --- reset_password ---


@pytest.mark.parametrize("confirm", ["", "abc", "secret1"])
def test_short_new_password(spy_gate, spy, alice, confirm):
    s = _login(spy_gate)
    result = spy_gate.reset_password(s, "abc", confirm)
    assert isinstance(result, ValidationError)
    assert result.errors["new_password"] == MSG_PASSWORD_TOO_SHORT
    assert "atleast 6 characters" in result.errors["new_password"]
    # the mismatch rule only applies once the new password is valid
    assert result.errors.get("confirm_password") in (None, MSG_CONFIRM_PASSWORD)
    assert not any(c[0] == "update_password_hash" for c in spy.calls)


def test_both_fields_validated_independently(gate, alice):
    s = _login(gate)
    result = gate.reset_password(s, "", "")
    assert result.errors == {"new_password": MSG_ENTER_NEW_PASSWORD, "confirm_password": MSG_CONFIRM_PASSWORD}


def test_confirmation_mismatch_does_not_mutate(spy_gate, spy, alice, sql_store):
    s = _login(spy_gate)
    result = spy_gate.reset_password(s, "secret1", "secret2")
    assert isinstance(result, ValidationError)
    assert result.errors == {"confirm_password": MSG_PASSWORD_MISMATCH}
    assert "did not match" in result.errors["confirm_password"]
    assert not any(c[0] == "update_password_hash" for c in spy.calls)
    assert sql_store.find_by_username("alice").password_hash == alice.password_hash
    assert spy_gate.require_session(s.token) == s


def test_successful_reset(gate, sql_store, sessions):
    user = sql_store.add_user("carol", hash_password("oldpass"))
    login = gate.authenticate("carol", "oldpass")
    assert isinstance(login, Authenticated)
    s = login.session

    result = gate.reset_password(s, "secret1", "secret1")
    assert result == RedirectSignal(target="/login")

    new_hash = sql_store.find_by_username("carol").password_hash
    assert new_hash != user.password_hash
    assert verify_password("secret1", new_hash)
    assert not verify_password("oldpass", new_hash)

    assert isinstance(gate.require_session(s.token), RedirectSignal)
    assert sessions.read(s.token) is None
    assert gate.authenticate("carol", "oldpass") == InvalidCredentials()
    assert isinstance(gate.authenticate("carol", "secret1"), Authenticated)


def test_reset_requires_logged_in_session(spy_gate, spy):
    anon = SessionState(token="t", logged_in=False, user_id=1, username="alice")
    assert spy_gate.reset_password(anon, "secret1", "secret1") == RedirectSignal(target="/login")
    assert spy_gate.reset_password(None, "secret1", "secret1") == RedirectSignal(target="/login")
    assert spy.calls == []


def test_reset_for_vanished_user_keeps_session(gate, sessions):
    s = sessions.create(12345, "ghost")
    with pytest.raises(StoreUnavailable):
        gate.reset_password(s, "secret1", "secret1")
    assert sessions.read(s.token) == s


# --- logout ---


def test_logout_destroys_session(gate, alice):
    s = _login(gate)
    assert gate.logout(s.token) == RedirectSignal(target="/login")
    assert isinstance(gate.require_session(s.token), RedirectSignal)
    assert gate.logout("") == RedirectSignal(target="/login")


def test_custom_login_url(sql_store, sessions):
    gate = CredentialGate(sql_store, sessions, login_url="/signin")
    assert gate.require_session("") == RedirectSignal(target="/signin")
