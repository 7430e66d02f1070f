"""Pytest configuration and shared fixtures for MyMetas tests."""

import os
import sys
import tempfile

# Settings are read at import time; select the testing profile first.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="mymetas-tests-"))

from collections.abc import Callable, Generator  # noqa: E402
from datetime import UTC, date, datetime  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from loguru import logger  # noqa: E402
from sqlmodel import Session  # noqa: E402

from mymetas.api import create_app  # noqa: E402
from mymetas.auth import hash_password  # noqa: E402
from mymetas.database import DatabaseManager  # noqa: E402
from mymetas.models import MetaRow, StepRow, UserRow  # noqa: E402
from mymetas.storage import PNG_SIGNATURE, AvatarStore  # noqa: E402

# =============================================================================
# Test Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure loguru for tests to avoid I/O errors."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


@pytest.fixture(scope="function", autouse=True)
def reset_loguru():
    """Reset loguru handlers before each test."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite file for one test."""
    return tmp_path / "mymetas_test.db"


@pytest.fixture
def test_db_manager(temp_db_path: Path) -> Generator[DatabaseManager, None, None]:
    """Initialized database manager on a temporary file."""
    db = DatabaseManager(database_path=temp_db_path)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def session(test_db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """Session on the temporary database."""
    with test_db_manager.session_scope() as session:
        yield session


@pytest.fixture
def make_user(session: Session) -> Callable[..., UserRow]:
    """Factory inserting users directly through the session."""
    counter = {"n": 0}

    def _make(name: str = "Ana", email: str | None = None) -> UserRow:
        counter["n"] += 1
        user = UserRow(
            name=name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password("secret-password"),
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_meta(session: Session) -> Callable[..., MetaRow]:
    """Factory inserting metas directly through the session."""

    def _make(owner: UserRow, title: str = "Run a marathon", **fields: Any) -> MetaRow:
        meta = MetaRow(title=title, user_id=owner.id, **fields)
        session.add(meta)
        session.commit()
        session.refresh(meta)
        return meta

    return _make


@pytest.fixture
def make_step(session: Session) -> Callable[..., StepRow]:
    """Factory inserting steps directly through the session."""

    def _make(meta: MetaRow, description: str = "Buy shoes", done: bool = False) -> StepRow:
        step = StepRow(description=description, done=done, meta_id=meta.id)
        session.add(step)
        session.commit()
        session.refresh(step)
        return step

    return _make


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def avatar_store(tmp_path: Path) -> AvatarStore:
    return AvatarStore(tmp_path / "avatars", "http://testserver/avatars")


@pytest.fixture
def client(
    test_db_manager: DatabaseManager,
    avatar_store: AvatarStore,
) -> Generator[TestClient, None, None]:
    """TestClient bound to an app on the temporary database."""
    app = create_app(db=test_db_manager, avatar_store=avatar_store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client: TestClient) -> Callable[..., dict[str, str]]:
    """Register an account and return its Authorization header."""

    def _register(
        email: str,
        name: str = "Test User",
        password: str = "secret-password",
    ) -> dict[str, str]:
        resp = client.post("/user", json={"name": name, "email": email, "password": password})
        assert resp.status_code == 201, resp.text
        resp = client.post("/session", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _register


@pytest.fixture
def alice(register) -> dict[str, str]:
    return register("alice@example.com", name="Alice")


@pytest.fixture
def bob(register) -> dict[str, str]:
    return register("bob@example.com", name="Bob")


@pytest.fixture
def png_bytes() -> bytes:
    """Minimal byte string carrying the PNG signature."""
    return PNG_SIGNATURE + b"\x00\x00\x00\rIHDR" + b"\x00" * 17


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture
def today() -> date:
    """Reference date used by countdown tests."""
    return date(2024, 6, 10)


@pytest.fixture
def frozen_now() -> datetime:
    return datetime(2024, 6, 10, 12, 0, 0, tzinfo=UTC)


