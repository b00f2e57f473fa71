import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from observ.auth.passwords import hash_new
from observ.infra import user_repo
from observ.infra.db import UserModel, configure, session_scope


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret-key")
    monkeypatch.delenv("OBSERV_SECRET_KEY", raising=False)
    monkeypatch.delenv("OBSERV_SESSION_MAX_AGE", raising=False)
    monkeypatch.delenv("OBSERV_COOKIE_SECURE", raising=False)
    # Cheap argon2 so the suite stays fast; production uses the library defaults.
    monkeypatch.setenv("OBSERV_ARGON2_TIME_COST", "1")
    monkeypatch.setenv("OBSERV_ARGON2_MEMORY_COST", "1024")
    monkeypatch.setenv("OBSERV_ARGON2_PARALLELISM", "1")


@pytest.fixture()
def db(tmp_path: Path) -> str:
    """Point the identity store at a fresh SQLite file."""
    url = f"sqlite:///{tmp_path / 'observ.db'}"
    configure(url)
    return url


@pytest.fixture()
def session(db):
    with session_scope() as s:
        yield s


@pytest.fixture()
def client(db) -> TestClient:
    from observ.app import app

    return TestClient(app)


def add_user(
    session,
    *,
    handle: str,
    email: Optional[str] = None,
    mmost: Optional[str] = None,
    password: str = "hunter22",
    tier: int = 0,
    active: bool = True,
    user_id: Optional[int] = None,
) -> UserModel:
    """Insert an account directly, bypassing the signup checks."""
    password_hash, salt = hash_new(password)
    model = UserModel(
        real_name=handle.title(),
        handle=handle,
        email=email or f"{handle}@example.org",
        mmost=mmost or handle,
        password_hash=password_hash,
        salt=salt,
        bio="",
        tier=tier,
        active=active,
    )
    if user_id is not None:
        model.id = user_id
    user_repo.save_user(session, model)
    user_repo.add_membership(session, model.id)
    session.commit()
    return model


def signup_data(handle: str = "alice", **overrides) -> dict:
    data = {
        "email": f"{handle}@example.org",
        "password": "correct horse",
        "password_repeat": "correct horse",
        "real_name": handle.title(),
        "handle": handle,
        "mmost": handle,
    }
    data.update(overrides)
    return data


def login(client: TestClient, email: str, password: str = "hunter22"):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)
