# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Login, session check, password reset and logout.

Every operation returns a tagged result instead of redirecting or raising,
so the web layer (or a test) decides what a transition means on the wire.
Store failures are the exception: they surface as ``StoreUnavailable``.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Dict, Union

from credgate.auth.passwords import hash_password, verify_password
from credgate.auth.session import SessionState, SessionStore
from credgate.auth.users import StoreUnavailable, UserStore

logger = logging.getLogger(__name__)

LOGIN_URL = "/login"
MIN_PASSWORD_LENGTH = 6

MSG_ENTER_USERNAME = "Please enter username."
MSG_ENTER_PASSWORD = "Please enter your password."
MSG_INVALID_CREDENTIALS = "Invalid username or password."
MSG_ENTER_NEW_PASSWORD = "Please enter the new password."
MSG_PASSWORD_TOO_SHORT = f"Password must have atleast {MIN_PASSWORD_LENGTH} characters."
MSG_CONFIRM_PASSWORD = "Please confirm the password."
MSG_PASSWORD_MISMATCH = "Password did not match."


@dataclass(frozen=True)
class Authenticated:
    session: SessionState


@dataclass(frozen=True)
class ValidationError:
    errors: Dict[str, str]
    # Non-secret values to redisplay in the form.
    values: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InvalidCredentials:
    message: str = MSG_INVALID_CREDENTIALS


@dataclass(frozen=True)
class RedirectSignal:
    target: str


LoginOutcome = Union[Authenticated, ValidationError, InvalidCredentials]
ResetOutcome = Union[RedirectSignal, ValidationError]


class CredentialGate:
    def __init__(self, users: UserStore, sessions: SessionStore, *, login_url: str = LOGIN_URL) -> None:
        self.users = users
        self.sessions = sessions
        self.login_url = login_url

    def authenticate(self, username: str, password: str) -> LoginOutcome:
        username = (username or "").strip()
        password = (password or "").strip()

        errors: Dict[str, str] = {}
        if not username:
            errors["username"] = MSG_ENTER_USERNAME
        if not password:
            errors["password"] = MSG_ENTER_PASSWORD
        if errors:
            return ValidationError(errors=errors, values={"username": username})

        user = self.users.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Login failed")
            return InvalidCredentials()

        session = self.sessions.create(user.id, user.username)
        logger.info("Login ok user=%s", user.id)
        return Authenticated(session=session)

    def require_session(self, token: str) -> Union[SessionState, RedirectSignal]:
        session = self.sessions.read(token) if token else None
        if session is None or session.logged_in is not True:
            return RedirectSignal(target=self.login_url)
        return session

    def reset_password(self, session: SessionState, new_password: str, confirm_password: str) -> ResetOutcome:
        if session is None or session.logged_in is not True:
            return RedirectSignal(target=self.login_url)

        new_password = (new_password or "").strip()
        confirm_password = (confirm_password or "").strip()

        errors: Dict[str, str] = {}
        if not new_password:
            errors["new_password"] = MSG_ENTER_NEW_PASSWORD
        elif len(new_password) < MIN_PASSWORD_LENGTH:
            errors["new_password"] = MSG_PASSWORD_TOO_SHORT

        if not confirm_password:
            errors["confirm_password"] = MSG_CONFIRM_PASSWORD
        elif "new_password" not in errors and not hmac.compare_digest(
            new_password.encode("utf-8"), confirm_password.encode("utf-8")
        ):
            errors["confirm_password"] = MSG_PASSWORD_MISMATCH

        if errors:
            return ValidationError(errors=errors)

        if not self.users.update_password_hash(session.user_id, hash_password(new_password)):
            logger.error("Password update touched no row for user=%s", session.user_id)
            raise StoreUnavailable("update_password_hash")

        self.sessions.destroy(session.token)
        logger.info("Password reset user=%s", session.user_id)
        return RedirectSignal(target=self.login_url)

    def logout(self, token: str) -> RedirectSignal:
        if token:
            self.sessions.destroy(token)
        return RedirectSignal(target=self.login_url)
