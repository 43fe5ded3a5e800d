#!/usr/bin/env python3
from __future__ import annotations

import hmac
from getpass import getpass

from credgate.app import build_user_store
from credgate.auth.gate import MIN_PASSWORD_LENGTH
from credgate.auth.passwords import hash_password


def main() -> None:
    store = build_user_store()

    username = input("Username: ").strip()
    if not username:
        raise SystemExit("Username is required")

    pw1 = getpass("Password: ").strip()
    pw2 = getpass("Repeat password: ").strip()
    if not hmac.compare_digest(pw1.encode("utf-8"), pw2.encode("utf-8")):
        raise SystemExit("Passwords do not match")
    if len(pw1) < MIN_PASSWORD_LENGTH:
        raise SystemExit(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")

    try:
        user = store.add_user(username, hash_password(pw1))
    except ValueError as exc:
        raise SystemExit(str(exc))
    print(f"OK -> id={user.id} username={user.username}")


if __name__ == "__main__":
    main()
