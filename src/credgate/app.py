# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import Depends, FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from credgate.auth.gate import CredentialGate, InvalidCredentials, ValidationError
from credgate.auth.session import COOKIE_NAME, DEFAULT_MAX_AGE_SECONDS, MemorySessionStore, sign_token
from credgate.auth.users import DEFAULT_USERS_PATH, StoreUnavailable, UserStore, YamlUserStore
from credgate.infra.sql_users import DEFAULT_DATABASE_URL, SqlUserStore
from credgate.permissions import cookie_settings, current_session_optional, require_session, session_token

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

LANDING_URL = "/welcome"
MSG_TRY_LATER = "Oops! Something went wrong. Please try again later."


def build_user_store() -> UserStore:
    kind = os.getenv("CREDGATE_USER_STORE", "sql").strip().lower()
    if kind == "yaml":
        return YamlUserStore(Path(os.getenv("CREDGATE_USERS_PATH", str(DEFAULT_USERS_PATH))))
    if kind == "sql":
        return SqlUserStore.from_url(os.getenv("CREDGATE_DATABASE_URL", DEFAULT_DATABASE_URL))
    raise RuntimeError(f"Unknown CREDGATE_USER_STORE: {kind!r} (expected 'sql' or 'yaml')")


app = FastAPI()
app.state.gate = CredentialGate(build_user_store(), MemorySessionStore(max_age=DEFAULT_MAX_AGE_SECONDS))


@app.middleware("http")
async def _session_middleware(request: Request, call_next):
    request.state.session = current_session_optional(request)
    return await call_next(request)


@app.exception_handler(StoreUnavailable)
async def _store_unavailable(request: Request, exc: StoreUnavailable):
    logger.warning("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"message": MSG_TRY_LATER},
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


def _render(request: Request, template_name: str, ctx: dict):
    """TemplateResponse wrapper injecting the current session."""
    base_ctx = {"current_session": getattr(request.state, "session", None)}
    return templates.TemplateResponse(request, template_name, {**base_ctx, **(ctx or {})})


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


# ------------------ Routes ------------------


@app.get("/")
def index():
    return _redirect(LANDING_URL)


@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    if getattr(request.state, "session", None):
        return _redirect(LANDING_URL)
    return _render(request, "login.html", {"username": "", "errors": {}, "login_error": ""})


@app.post("/login")
def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
):
    if getattr(request.state, "session", None):
        return _redirect(LANDING_URL)

    gate: CredentialGate = request.app.state.gate
    result = gate.authenticate(username, password)
    if isinstance(result, ValidationError):
        return _render(
            request,
            "login.html",
            {"username": result.values.get("username", ""), "errors": result.errors, "login_error": ""},
        )
    if isinstance(result, InvalidCredentials):
        return _render(
            request,
            "login.html",
            {"username": username.strip(), "errors": {}, "login_error": result.message},
        )

    resp = _redirect(LANDING_URL)
    resp.set_cookie(
        COOKIE_NAME,
        sign_token(result.session.token),
        max_age=DEFAULT_MAX_AGE_SECONDS,
        **cookie_settings(),
    )
    return resp


@app.get("/welcome", response_class=HTMLResponse)
def welcome(request: Request, session=Depends(require_session)):
    return _render(request, "welcome.html", {"username": session.username})


@app.get("/reset-password", response_class=HTMLResponse)
def reset_password_get(request: Request, session=Depends(require_session)):
    return _render(request, "reset_password.html", {"errors": {}})


@app.post("/reset-password")
def reset_password_post(
    request: Request,
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    session=Depends(require_session),
):
    gate: CredentialGate = request.app.state.gate
    result = gate.reset_password(session, new_password, confirm_password)
    if isinstance(result, ValidationError):
        return _render(request, "reset_password.html", {"errors": result.errors})
    resp = _redirect(result.target)
    resp.delete_cookie(COOKIE_NAME)
    return resp


@app.post("/logout")
def logout_post(request: Request):
    gate: CredentialGate = request.app.state.gate
    result = gate.logout(session_token(request))
    resp = _redirect(result.target)
    resp.delete_cookie(COOKIE_NAME)
    return resp
