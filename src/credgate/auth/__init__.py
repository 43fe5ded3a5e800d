# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential gate.

This package provides:
- Password hashing/verification (argon2)
- User stores (SQL via SQLAlchemy, or data/users.yml)
- Server-side sessions keyed by a signed cookie token (itsdangerous)
- The gate itself: login, session check, password reset, logout
"""
