# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from typing import Optional

from fastapi import HTTPException, Request, status

from credgate.auth.gate import CredentialGate, RedirectSignal
from credgate.auth.session import COOKIE_NAME, SessionState, unsign_token


def _gate(request: Request) -> CredentialGate:
    return request.app.state.gate


def session_token(request: Request) -> str:
    return unsign_token(request.cookies.get(COOKIE_NAME, ""))


def load_session_from_request(request: Request) -> Optional[SessionState]:
    result = _gate(request).require_session(session_token(request))
    if isinstance(result, RedirectSignal):
        return None
    return result


def current_session_optional(request: Request) -> Optional[SessionState]:
    s = getattr(request.state, "session", None)
    if s is not None:
        return s
    return load_session_from_request(request)


def require_session(request: Request) -> SessionState:
    result = _gate(request).require_session(session_token(request))
    if isinstance(result, RedirectSignal):
        raise HTTPException(status_code=status.HTTP_302_FOUND, headers={"Location": result.target})
    return result


def cookie_settings() -> dict:
    secure = os.getenv("CREDGATE_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}
    return {"httponly": True, "samesite": "lax", "secure": secure}
