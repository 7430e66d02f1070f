"""Database management for MyMetas.

This module provides SQLite database management with:
- Engine creation with foreign-key enforcement on every connection
- WAL mode for file databases, a shared static pool for ``:memory:``
- Table creation from the SQLModel metadata
- Short-lived sessions, one per unit of work
- Entity statistics for the CLI

Example:
    >>> from mymetas.database import DatabaseManager
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>>
    >>> with db.session_scope() as session:
    ...     metas = MetaRepository(session).list_for_owner(user_id=1)
    >>>
    >>> db.close()
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event, func
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from mymetas.config import settings
from mymetas.logging import logger
from mymetas.models import MetaRow, MetaStatus, StepRow, UserRow


def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.close()


# =============================================================================
# Database Manager
# =============================================================================


class DatabaseManager:
    """Manages the SQLite engine and hands out sessions.

    Args:
        database_path: Path to SQLite database file (defaults to
            settings.database_path, ``:memory:`` for an in-memory database)

    Example:
        >>> db = DatabaseManager(database_path=Path("/tmp/mymetas.db"))
        >>> db.initialize()
        >>> with db.session_scope() as session:
        ...     session.add(UserRow(name="Ana", email="ana@example.com", password_hash="x"))
        ...     session.commit()
        >>> db.get_statistics()["users"]
        1
    """

    def __init__(self, database_path: Path | str | None = None):
        self.database_path = Path(database_path or settings.database_path)
        self.engine: Engine | None = None

    @property
    def is_memory(self) -> bool:
        return str(self.database_path) == ":memory:"

    @property
    def database_url(self) -> str:
        if self.is_memory:
            return "sqlite://"
        return f"sqlite:///{self.database_path}"

    def initialize(self) -> None:
        """Create the engine and all tables.

        This method:
        1. Creates the database file's parent directory
        2. Enables foreign keys on every new connection (cascading deletes)
        3. Enables WAL mode for file databases
        4. Creates all tables from SQLModel metadata
        """
        if self.engine is not None:
            return

        if self.is_memory:
            self.engine = create_engine(
                self.database_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                self.database_url,
                echo=False,
                connect_args={"check_same_thread": False},
            )

        event.listen(self.engine, "connect", _enable_foreign_keys)

        if not self.is_memory:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA journal_mode = WAL;")
                conn.exec_driver_sql("PRAGMA synchronous = NORMAL;")
                conn.commit()

        SQLModel.metadata.create_all(self.engine)
        logger.info(f"✅ Database initialized at {self.database_path}")

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise RuntimeError("Database not initialized")
        return self.engine

    def session(self) -> Session:
        """Open a new session. The caller is responsible for closing it."""
        return Session(self._require_engine(), expire_on_commit=False)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session for one unit of work, rolled back on error and always closed."""
        session = self.session()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_statistics(self) -> dict[str, int]:
        """Count rows per entity and metas per status.

        Returns:
            Mapping with keys ``users``, ``metas``, ``steps``, ``steps_done``,
            ``favorites`` and one key per MetaStatus value
        """
        with self.session_scope() as session:
            stats = {
                "users": session.exec(select(func.count()).select_from(UserRow)).one(),
                "metas": session.exec(select(func.count()).select_from(MetaRow)).one(),
                "steps": session.exec(select(func.count()).select_from(StepRow)).one(),
                "steps_done": session.exec(
                    select(func.count()).select_from(StepRow).where(StepRow.done == True)  # noqa: E712
                ).one(),
                "favorites": session.exec(
                    select(func.count()).select_from(MetaRow).where(MetaRow.favorite == True)  # noqa: E712
                ).one(),
            }
            for status in MetaStatus:
                stats[status.value] = session.exec(
                    select(func.count()).select_from(MetaRow).where(MetaRow.status == status)
                ).one()
        return stats

    def drop_all(self) -> None:
        """Drop every table (used by ``mymetas init --force``)."""
        SQLModel.metadata.drop_all(self._require_engine())
        logger.warning(f"Dropped all tables in {self.database_path}")

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            logger.debug("Database connection closed")


__all__ = ["DatabaseManager"]
