# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

import yaml

logger = logging.getLogger(__name__)

# IMPORTANT: do not rely on current working directory.
# Anchor the default users.yml path to the project root (works well with editable installs).
BASE_DIR = Path(__file__).resolve().parents[3]
DEFAULT_USERS_PATH = Path(
    os.getenv("CREDGATE_USERS_PATH", str(BASE_DIR / "data" / "users.yml"))
).resolve()


class StoreUnavailable(Exception):
    """The user store could not be reached or refused the operation."""


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    password_hash: str

    def __repr__(self) -> str:
        return f"UserRecord(id={self.id!r}, username={self.username!r})"


class UserStore(Protocol):
    def find_by_username(self, username: str) -> Optional[UserRecord]: ...

    def update_password_hash(self, user_id: int, new_hash: str) -> bool: ...

    def add_user(self, username: str, password_hash: str) -> UserRecord: ...


def _entry_id(udata: object) -> Optional[int]:
    if not isinstance(udata, dict):
        return None
    try:
        return int(udata.get("id"))
    except (TypeError, ValueError):
        return None


def _load_users_file(path: Path) -> Dict[str, UserRecord]:
    if not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    users = (raw.get("users") or {}) if isinstance(raw, dict) else {}
    out: Dict[str, UserRecord] = {}
    for uname, udata in users.items():
        if not isinstance(udata, dict):
            continue
        username = str(uname)
        if not username.strip():
            continue
        user_id = _entry_id(udata)
        if user_id is None:
            continue
        ph = str(udata.get("password_hash") or "").strip()
        out[username] = UserRecord(id=user_id, username=username, password_hash=ph)
    return out


class YamlUserStore:
    """User records kept in a YAML file:

        version: 1
        users:
          alice:
            id: 1
            password_hash: $argon2id$...

    Reads are cached by file mtime; writes rewrite the whole file.
    """

    def __init__(self, path: Path = DEFAULT_USERS_PATH) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._cache: Tuple[float, Dict[str, UserRecord]] = (0.0, {})

    def _users(self) -> Dict[str, UserRecord]:
        try:
            mtime = self.path.stat().st_mtime if self.path.exists() else 0.0
            cached_mtime, cached_users = self._cache
            if mtime and mtime == cached_mtime and cached_users:
                return cached_users
            users = _load_users_file(self.path)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Cannot read user file %s", self.path, exc_info=True)
            raise StoreUnavailable(str(self.path)) from exc
        self._cache = (mtime, users)
        return users

    def _read_raw(self) -> dict:
        if self.path.exists():
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        else:
            raw = {"version": 1, "users": {}}
        if not isinstance(raw, dict):
            raw = {"version": 1}
        if "users" not in raw or not isinstance(raw["users"], dict):
            raw["users"] = {}
        return raw

    def _write_raw(self, raw: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(yaml.safe_dump(raw, sort_keys=False, allow_unicode=True), encoding="utf-8")
        self._cache = (0.0, {})

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        if not username:
            return None
        return self._users().get(username)

    def update_password_hash(self, user_id: int, new_hash: str) -> bool:
        with self._lock:
            try:
                raw = self._read_raw()
                for udata in raw["users"].values():
                    if _entry_id(udata) == user_id:
                        udata["password_hash"] = new_hash
                        self._write_raw(raw)
                        return True
            except (OSError, yaml.YAMLError) as exc:
                logger.error("Cannot update user file %s", self.path, exc_info=True)
                raise StoreUnavailable(str(self.path)) from exc
        return False

    def add_user(self, username: str, password_hash: str) -> UserRecord:
        with self._lock:
            try:
                raw = self._read_raw()
                if username in raw["users"]:
                    raise ValueError(f"User already exists: {username}")
                ids = [_entry_id(u) for u in raw["users"].values()]
                user_id = max([i for i in ids if i is not None], default=0) + 1
                raw["users"][username] = {"id": user_id, "password_hash": password_hash}
                self._write_raw(raw)
            except (OSError, yaml.YAMLError) as exc:
                logger.error("Cannot write user file %s", self.path, exc_info=True)
                raise StoreUnavailable(str(self.path)) from exc
        return UserRecord(id=user_id, username=username, password_hash=password_hash)
