"""Repositories for ownership-scoped database operations.

This module provides a generic :class:`Repository` for SQLModel entities plus
three entity repositories that enforce the MyMetas access rules:

- :class:`UserRepository` looks accounts up by id or email.
- :class:`MetaRepository` only ever returns metas whose ``user_id`` equals the
  requester passed in. A foreign meta and a missing meta both come back as
  ``None``.
- :class:`StepRepository` resolves a step in two stages: the parent meta
  under the ownership rule first, then the step as a child of that meta.
  Steps carry no owner of their own, so there is no lookup by step id alone.

Example:
    >>> metas = MetaRepository(session)
    >>> meta = metas.get_owned(owner_id=1, meta_id=7)
    >>> if meta is None:
    ...     raise NotFoundError("Meta")
    >>> steps = StepRepository(session)
    >>> step = steps.get_in_meta(owner_id=1, meta_id=7, step_id=3)
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, select

from mymetas.lifecycle import apply_status
from mymetas.logging import logger
from mymetas.models import MetaRow, MetaStatus, StepRow, UserRow
from mymetas.validators import (
    MetaCreate,
    MetaUpdate,
    StepCreate,
    StepUpdate,
)

# =============================================================================
# Type Variables
# =============================================================================

T = TypeVar("T", bound=SQLModel)

# SQLite INTEGER range; ids outside it cannot match any row.
MIN_ROW_ID = -(2**63)
MAX_ROW_ID = 2**63 - 1


def storable_id(entity_id: int) -> bool:
    return MIN_ROW_ID <= entity_id <= MAX_ROW_ID


# =============================================================================
# Generic Repository
# =============================================================================


class Repository(Generic[T]):
    """Generic repository implementation for SQLModel entities.

    Type Parameter:
        T: SQLModel entity type (UserRow, MetaRow, StepRow)

    Args:
        session: SQLModel Session instance
        model: SQLModel class
    """

    def __init__(self, session: Session, model: type[T]):
        self.session = session
        self.model = model

    def get(self, entity_id: int) -> T | None:
        """Get entity by primary key, or None if not found."""
        if not storable_id(entity_id):
            return None
        return self.session.get(self.model, entity_id)

    def get_all(self, limit: int = 100, offset: int = 0) -> Sequence[T]:
        """Get all entities with pagination."""
        stmt = select(self.model).limit(limit).offset(offset)
        return self.session.exec(stmt).all()

    def save(self, entity: T) -> T:
        """Insert or update ``entity`` and return its refreshed state."""
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def remove(self, entity: T) -> None:
        """Delete ``entity`` (ORM cascades apply)."""
        self.session.delete(entity)
        self.session.commit()

    def find_by(self, **filters: Any) -> Sequence[T]:
        """Find entities matching simple equality filters."""
        stmt = select(self.model)
        for key, value in filters.items():
            if hasattr(self.model, key):
                stmt = stmt.where(getattr(self.model, key) == value)
        return self.session.exec(stmt).all()

    def count(self) -> int:
        """Count total number of entities."""
        stmt = select(func.count()).select_from(self.model)
        return self.session.exec(stmt).one()


# =============================================================================
# Users
# =============================================================================


class UserRepository(Repository[UserRow]):
    """Account lookups. Accounts are only ever addressed as "the requester"."""

    def __init__(self, session: Session):
        super().__init__(session, UserRow)

    def get_by_email(self, email: str) -> Optional[UserRow]:
        stmt = select(UserRow).where(UserRow.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        """True if another account already uses ``email``."""
        user = self.get_by_email(email)
        return user is not None and user.id != exclude_id

    def delete_account(self, user: UserRow) -> None:
        """Delete an account together with its metas and their steps."""
        logger.info(f"Deleting account {user.id}")
        self.remove(user)


# =============================================================================
# Metas
# =============================================================================


class MetaRepository(Repository[MetaRow]):
    """Meta access scoped to the requesting user."""

    def __init__(self, session: Session):
        super().__init__(session, MetaRow)

    def list_for_owner(
        self,
        owner_id: int,
        search: Optional[str] = None,
    ) -> Sequence[MetaRow]:
        """List the owner's metas, favorites first, newest first.

        Args:
            owner_id: Requesting user
            search: Optional case-insensitive title filter (blank is ignored)
        """
        stmt = select(MetaRow).where(MetaRow.user_id == owner_id)
        term = (search or "").strip()
        if term:
            title = func.lower(MetaRow.title)
            stmt = stmt.where(title.contains(term.lower(), autoescape=True))
        stmt = stmt.order_by(
            col(MetaRow.favorite).desc(),
            col(MetaRow.created_at).desc(),
            col(MetaRow.id).desc(),
        )
        return self.session.exec(stmt).all()

    def get_owned(self, owner_id: int, meta_id: int) -> Optional[MetaRow]:
        """Return the meta only if ``owner_id`` owns it."""
        if not storable_id(meta_id):
            return None
        stmt = select(MetaRow).where(MetaRow.id == meta_id, MetaRow.user_id == owner_id)
        return self.session.exec(stmt).first()

    def create_for_owner(self, owner_id: int, payload: MetaCreate) -> MetaRow:
        """Create a meta owned by ``owner_id``.

        Creating directly in COMPLETED stamps the completion time.
        """
        meta = MetaRow(
            title=payload.title,
            description=payload.description,
            date_target=payload.date_target,
            user_id=owner_id,
        )
        apply_status(meta, payload.status)
        meta = self.save(meta)
        logger.debug(f"Meta {meta.id} created for user {owner_id}")
        return meta

    def update_owned(
        self,
        owner_id: int,
        meta_id: int,
        payload: MetaUpdate,
        now: Optional[datetime] = None,
    ) -> Optional[MetaRow]:
        """Apply the fields present in ``payload`` to an owned meta.

        Returns:
            Updated meta, or None if the meta is missing or not owned
        """
        meta = self.get_owned(owner_id, meta_id)
        if meta is None:
            return None

        changes = payload.changes()
        status = changes.pop("status", None)
        for key, value in changes.items():
            setattr(meta, key, value)
        if status is not None and apply_status(meta, MetaStatus(status), now):
            logger.info(f"Meta {meta.id} completed")
        meta.touch()
        return self.save(meta)

    def toggle_favorite(self, owner_id: int, meta_id: int) -> Optional[MetaRow]:
        """Flip the favorite flag of an owned meta."""
        meta = self.get_owned(owner_id, meta_id)
        if meta is None:
            return None
        meta.favorite = not meta.favorite
        meta.touch()
        return self.save(meta)

    def delete_owned(self, owner_id: int, meta_id: int) -> bool:
        """Delete an owned meta and its steps.

        Returns:
            True if deleted, False if missing or not owned
        """
        meta = self.get_owned(owner_id, meta_id)
        if meta is None:
            return False
        self.remove(meta)
        logger.debug(f"Meta {meta_id} deleted by user {owner_id}")
        return True


# =============================================================================
# Steps
# =============================================================================


class StepRepository(Repository[StepRow]):
    """Step access resolved through the owned parent meta."""

    def __init__(self, session: Session):
        super().__init__(session, StepRow)
        self.metas = MetaRepository(session)

    def _find_child(self, meta: MetaRow, step_id: int) -> Optional[StepRow]:
        if not storable_id(step_id):
            return None
        stmt = select(StepRow).where(StepRow.id == step_id, StepRow.meta_id == meta.id)
        return self.session.exec(stmt).first()

    def get_in_meta(self, owner_id: int, meta_id: int, step_id: int) -> Optional[StepRow]:
        """Resolve owner -> meta -> step; None if either stage fails."""
        meta = self.metas.get_owned(owner_id, meta_id)
        if meta is None:
            return None
        return self._find_child(meta, step_id)

    def create_in_meta(
        self,
        owner_id: int,
        meta_id: int,
        payload: StepCreate,
    ) -> Optional[StepRow]:
        """Add a step to an owned meta, or None if the meta is not found."""
        meta = self.metas.get_owned(owner_id, meta_id)
        if meta is None:
            return None
        step = StepRow(description=payload.description, meta_id=meta.id)
        return self.save(step)

    def update_in_meta(
        self,
        owner_id: int,
        meta_id: int,
        step_id: int,
        payload: StepUpdate,
    ) -> Optional[StepRow]:
        """Apply the fields present in ``payload`` to a step of an owned meta."""
        step = self.get_in_meta(owner_id, meta_id, step_id)
        if step is None:
            return None
        for key, value in payload.changes().items():
            setattr(step, key, value)
        step.touch()
        return self.save(step)

    def delete_in_meta(self, owner_id: int, meta_id: int, step_id: int) -> bool:
        """Delete a step of an owned meta; False if either stage fails."""
        step = self.get_in_meta(owner_id, meta_id, step_id)
        if step is None:
            return False
        self.remove(step)
        return True


__all__ = [
    "Repository",
    "storable_id",
    "UserRepository",
    "MetaRepository",
    "StepRepository",
]
