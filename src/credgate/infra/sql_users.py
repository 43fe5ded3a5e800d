# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import Integer, String, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from credgate.auth.users import BASE_DIR, StoreUnavailable, UserRecord

logger = logging.getLogger(__name__)

# Anchored to the project root, like DEFAULT_USERS_PATH.
DEFAULT_DB_PATH = BASE_DIR / "data" / "credgate.db"
DEFAULT_DATABASE_URL = os.getenv("CREDGATE_DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH.as_posix()}")


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)


def make_engine(url: str = DEFAULT_DATABASE_URL) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


class SqlUserStore:
    """User records in a relational table, one short-lived ORM session per call."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    @classmethod
    def from_url(cls, url: str = DEFAULT_DATABASE_URL) -> "SqlUserStore":
        if url.startswith("sqlite:///"):
            db_file = url[len("sqlite:///"):]
            if db_file and db_file != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(db_file)), exist_ok=True)
        store = cls(make_engine(url))
        store.init_schema()
        return store

    def init_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            logger.error("Cannot create users table", exc_info=True)
            raise StoreUnavailable("schema") from exc

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        if not username:
            return None
        stmt = select(UserRow).where(UserRow.username == username).limit(2)
        try:
            with self._session() as db:
                rows = db.execute(stmt).scalars().all()
                # Uniqueness is the table's job; anything but one row is "not found".
                if len(rows) != 1:
                    return None
                row = rows[0]
                return UserRecord(id=row.id, username=row.username, password_hash=row.password)
        except SQLAlchemyError as exc:
            logger.error("User lookup failed", exc_info=True)
            raise StoreUnavailable("find_by_username") from exc

    def update_password_hash(self, user_id: int, new_hash: str) -> bool:
        stmt = update(UserRow).where(UserRow.id == user_id).values(password=new_hash)
        try:
            with self._session() as db:
                result = db.execute(stmt)
                db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            logger.error("Password update failed for user=%s", user_id, exc_info=True)
            raise StoreUnavailable("update_password_hash") from exc

    def add_user(self, username: str, password_hash: str) -> UserRecord:
        try:
            with self._session() as db:
                row = UserRow(username=username, password=password_hash)
                db.add(row)
                db.commit()
                return UserRecord(id=row.id, username=row.username, password_hash=row.password)
        except IntegrityError as exc:
            raise ValueError(f"User already exists: {username}") from exc
        except SQLAlchemyError as exc:
            logger.error("User insert failed", exc_info=True)
            raise StoreUnavailable("add_user") from exc
