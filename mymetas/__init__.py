"""MyMetas - goal tracking with ownership-scoped metas and steps.

This package provides an HTTP API, a SQLite persistence layer and a terminal
client for tracking goals ("metas") and their checklist steps.

Example:
    >>> from mymetas import DatabaseManager, MetaRepository
    >>>
    >>> db = DatabaseManager()
    >>> db.initialize()
    >>> with db.session_scope() as session:
    ...     metas = MetaRepository(session).list_for_owner(owner_id=1)
"""

from mymetas.config import settings
from mymetas.database import DatabaseManager
from mymetas.lifecycle import Countdown, apply_status, countdown
from mymetas.models import (
    MetaDetail,
    MetaRead,
    MetaRow,
    MetaStatus,
    StepRead,
    StepRow,
    UserRead,
    UserRole,
    UserRow,
)
from mymetas.repository import MetaRepository, StepRepository, UserRepository

__version__ = "0.1.0"

__all__ = [
    # Main components
    "DatabaseManager",
    "MetaRepository",
    "StepRepository",
    "UserRepository",
    # Configuration
    "settings",
    # Lifecycle
    "Countdown",
    "apply_status",
    "countdown",
    # Enumerations
    "MetaStatus",
    "UserRole",
    # Pydantic models
    "UserRead",
    "MetaRead",
    "MetaDetail",
    "StepRead",
    # SQLModel tables
    "UserRow",
    "MetaRow",
    "StepRow",
]
