import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import importlib
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from credgate.auth.gate import CredentialGate
from credgate.auth.passwords import hash_password
from credgate.auth.session import MemorySessionStore
from credgate.auth.users import YamlUserStore
from credgate.infra.sql_users import SqlUserStore


@pytest.fixture(autouse=True)
def secret_key(monkeypatch):
    monkeypatch.setenv("CREDGATE_SECRET_KEY", "test-secret-key")
    monkeypatch.delenv("CREDGATE_COOKIE_SECURE", raising=False)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'data' / 'credgate.db'}"


@pytest.fixture()
def sql_store(db_url) -> SqlUserStore:
    return SqlUserStore.from_url(db_url)


@pytest.fixture()
def yaml_store(tmp_path: Path) -> YamlUserStore:
    return YamlUserStore(tmp_path / "data" / "users.yml")


@pytest.fixture()
def alice(sql_store):
    """alice / correct-pass in the SQL store."""
    return sql_store.add_user("alice", hash_password("correct-pass"))


@pytest.fixture()
def sessions() -> MemorySessionStore:
    return MemorySessionStore(max_age=60)


@pytest.fixture()
def gate(sql_store, sessions) -> CredentialGate:
    return CredentialGate(sql_store, sessions)


@pytest.fixture()
def app_module(db_url, monkeypatch):
    """The web app wired to a fresh SQL store in tmp_path."""
    monkeypatch.setenv("CREDGATE_USER_STORE", "sql")
    monkeypatch.setenv("CREDGATE_DATABASE_URL", db_url)

    import credgate.app as module
    importlib.reload(module)
    return module


@pytest.fixture()
def client(app_module) -> TestClient:
    return TestClient(app_module.app)
