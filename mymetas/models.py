"""Data models for MyMetas.

This module defines both the SQLModel ORM tables used for persistence and
the Pydantic models used to render API responses.

Models are organized into three sections:
1. Enumerations shared by tables, payloads and the client
2. SQLModel tables (users, metas, steps)
3. Pydantic response models
"""

from datetime import date
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlmodel import Field, Relationship, SQLModel

from mymetas.utils import utc_now_iso

# =============================================================================
# Section 1: Enumerations
# =============================================================================


class MetaStatus(StrEnum):
    """Lifecycle state of a meta."""

    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UserRole(StrEnum):
    """Account role flag."""

    ORDINARY = "ordinary"
    ADMIN = "admin"


# =============================================================================
# Section 2: SQLModel Tables for Database Persistence
# =============================================================================


class UserRow(SQLModel, table=True):
    """Account that owns metas.

    Deleting a user deletes their metas (and, transitively, their steps).
    """

    __tablename__ = "users"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str
    profile_photo_url: Optional[str] = None
    role: UserRole = Field(default=UserRole.ORDINARY)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = Field(default_factory=utc_now_iso)

    metas: list["MetaRow"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    def touch(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = utc_now_iso()


class MetaRow(SQLModel, table=True):
    """A user's goal.

    ``completed_at`` is stamped on the transition into COMPLETED and is kept
    when the meta later leaves that state.
    """

    __tablename__ = "metas"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    description: Optional[str] = None
    status: MetaStatus = Field(default=MetaStatus.TO_DO, index=True)
    date_target: Optional[date] = None
    favorite: bool = Field(default=False)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    completed_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso, index=True)
    updated_at: Optional[str] = Field(default_factory=utc_now_iso)

    user: Optional[UserRow] = Relationship(back_populates="metas")
    steps: list["StepRow"] = Relationship(
        back_populates="meta",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "StepRow.id",
        },
    )

    def touch(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = utc_now_iso()


class StepRow(SQLModel, table=True):
    """Checklist item of a meta. Reachable only through its parent meta."""

    __tablename__ = "steps"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    description: str
    done: bool = Field(default=False)
    meta_id: int = Field(foreign_key="metas.id", index=True, ondelete="CASCADE")
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = Field(default_factory=utc_now_iso)

    meta: Optional[MetaRow] = Relationship(back_populates="steps")

    def touch(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = utc_now_iso()


# =============================================================================
# Section 3: Pydantic Response Models
# =============================================================================


class UserRead(BaseModel):
    """Public view of an account. Never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    profile_photo_url: Optional[str] = None
    role: UserRole = UserRole.ORDINARY
    created_at: str
    updated_at: Optional[str] = None


class StepRead(BaseModel):
    """Step as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    done: bool
    meta_id: int
    created_at: str
    updated_at: Optional[str] = None


class MetaRead(BaseModel):
    """Meta as returned by list, create and update endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    status: MetaStatus
    date_target: Optional[date] = None
    favorite: bool
    user_id: int
    completed_at: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None


class MetaDetail(MetaRead):
    """Meta with its steps, as returned by the detail endpoint."""

    steps: list[StepRead] = []


class SessionToken(BaseModel):
    """Issued bearer token.

    Attributes:
        token: Signed JWT
        type: Always "bearer"
        expires_at: Expiry timestamp (ISO8601, UTC)
        user: The authenticated account
    """

    token: str
    type: str = "bearer"
    expires_at: str
    user: UserRead


__all__ = [
    "MetaStatus",
    "UserRole",
    "UserRow",
    "MetaRow",
    "StepRow",
    "UserRead",
    "StepRead",
    "MetaRead",
    "MetaDetail",
    "SessionToken",
]
