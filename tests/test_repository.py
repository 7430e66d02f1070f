"""Tests for ownership-scoped repositories.

These tests exercise the repositories directly against a temporary SQLite
file, covering:
- Owner scoping of every meta operation
- Two-stage step resolution (meta first, then step within it)
- Cascading deletes for users and metas
- Ordering and search of the meta list
"""

from datetime import UTC, date, datetime

import pytest
from sqlmodel import select

from mymetas.models import MetaRow, MetaStatus, StepRow, UserRow
from mymetas.repository import (
    MetaRepository,
    Repository,
    StepRepository,
    UserRepository,
)
from mymetas.validators import MetaCreate, MetaUpdate, StepCreate, StepUpdate


@pytest.fixture
def metas(session) -> MetaRepository:
    return MetaRepository(session)


@pytest.fixture
def steps(session) -> StepRepository:
    return StepRepository(session)


@pytest.fixture
def owner(make_user) -> UserRow:
    return make_user("Ana")


@pytest.fixture
def stranger(make_user) -> UserRow:
    return make_user("Bruno")


# =============================================================================
# Generic Repository
# =============================================================================


class TestGenericRepository:
    """Tests for the generic Repository[T] helpers."""

    def test_get_and_count(self, session, owner):
        """Test primary key lookup and counting."""
        repo = Repository[UserRow](session, UserRow)

        assert repo.get(owner.id).email == owner.email
        assert repo.get(9999) is None
        assert repo.count() == 1

    def test_find_by_ignores_unknown_filters(self, session, owner):
        """Test find_by filters on known columns only."""
        repo = Repository[UserRow](session, UserRow)

        assert len(repo.find_by(name="Ana", nonexistent="x")) == 1
        assert repo.find_by(name="Nobody") == []

    def test_get_all_paginates(self, session, make_user):
        """Test limit and offset."""
        for _ in range(3):
            make_user()
        repo = Repository[UserRow](session, UserRow)

        assert len(repo.get_all(limit=2)) == 2
        assert len(repo.get_all(limit=2, offset=2)) == 1


# =============================================================================
# Users
# =============================================================================


class TestUserRepository:
    """Tests for account lookups."""

    def test_get_by_email_is_case_insensitive(self, session, make_user):
        """Test email lookup normalizes the address."""
        user = make_user(email="ana@example.com")

        assert UserRepository(session).get_by_email("  ANA@example.com ").id == user.id

    def test_email_taken(self, session, make_user):
        """Test duplicate detection excludes the account itself."""
        user = make_user(email="ana@example.com")
        users = UserRepository(session)

        assert users.email_taken("ana@example.com")
        assert not users.email_taken("ana@example.com", exclude_id=user.id)
        assert not users.email_taken("other@example.com")

    def test_delete_account_cascades(self, session, owner, make_meta, make_step):
        """Test deleting a user removes their metas and steps."""
        meta = make_meta(owner)
        make_step(meta)

        UserRepository(session).delete_account(owner)

        assert session.exec(select(MetaRow)).all() == []
        assert session.exec(select(StepRow)).all() == []


# =============================================================================
# Metas
# =============================================================================


class TestMetaRepository:
    """Tests for owner-scoped meta access."""

    def test_get_owned(self, metas, owner, stranger, make_meta):
        """Test a meta is only visible to its owner."""
        meta = make_meta(owner)

        assert metas.get_owned(owner.id, meta.id).id == meta.id
        assert metas.get_owned(stranger.id, meta.id) is None
        assert metas.get_owned(owner.id, 9999) is None

    def test_list_for_owner_scopes_and_orders(self, metas, owner, stranger, make_meta):
        """Test favorites come first, then newest first."""
        oldest = make_meta(owner, "Oldest", created_at="2024-01-01T00:00:00Z")
        newest = make_meta(owner, "Newest", created_at="2024-03-01T00:00:00Z")
        starred = make_meta(owner, "Starred", favorite=True, created_at="2023-01-01T00:00:00Z")
        make_meta(stranger, "Foreign")

        listed = metas.list_for_owner(owner.id)

        assert [m.id for m in listed] == [starred.id, newest.id, oldest.id]

    def test_list_for_owner_search(self, metas, owner, make_meta):
        """Test the case-insensitive title filter."""
        make_meta(owner, "Run a Marathon")
        make_meta(owner, "Read books")

        assert [m.title for m in metas.list_for_owner(owner.id, search="marath")] == [
            "Run a Marathon"
        ]
        assert len(metas.list_for_owner(owner.id, search="   ")) == 2

    def test_out_of_range_ids_not_found(self, metas, steps, owner, make_meta):
        """Test ids SQLite cannot store resolve to None instead of raising."""
        meta = make_meta(owner)

        assert metas.get_owned(owner.id, 2**63) is None
        assert metas.get(-(2**63) - 1) is None
        assert steps.get_in_meta(owner.id, meta.id, 10**20) is None
        assert metas.delete_owned(owner.id, 10**20) is False

    def test_list_for_owner_search_wildcards(self, metas, owner, make_meta):
        """Test LIKE wildcards in the search term are matched literally."""
        make_meta(owner, "Save 10% more")
        make_meta(owner, "Read books")

        assert metas.list_for_owner(owner.id, search="_") == []
        assert [m.title for m in metas.list_for_owner(owner.id, search="10%")] == [
            "Save 10% more"
        ]

    def test_create_for_owner(self, metas, owner):
        """Test creation assigns the owner and defaults."""
        meta = metas.create_for_owner(
            owner.id, MetaCreate(title="Learn Go", date_target=date(2024, 9, 1))
        )

        assert meta.id is not None
        assert meta.user_id == owner.id
        assert meta.status == MetaStatus.TO_DO
        assert meta.favorite is False
        assert meta.completed_at is None

    def test_create_completed_stamps(self, metas, owner):
        """Test creating directly in COMPLETED stamps completed_at."""
        meta = metas.create_for_owner(
            owner.id, MetaCreate(title="Done already", status=MetaStatus.COMPLETED)
        )

        assert meta.completed_at is not None

    def test_update_owned_applies_sent_fields(self, metas, owner, make_meta):
        """Test only sent fields change."""
        meta = make_meta(owner, "Old title", description="keep me")

        updated = metas.update_owned(owner.id, meta.id, MetaUpdate(title="New title"))

        assert updated.title == "New title"
        assert updated.description == "keep me"

    def test_update_owned_completion_stamp(self, metas, owner, make_meta):
        """Test completion stamping and retention through updates."""
        meta = make_meta(owner, status=MetaStatus.IN_PROGRESS)
        now = datetime(2024, 6, 10, 8, 0, tzinfo=UTC)

        done = metas.update_owned(owner.id, meta.id, MetaUpdate(status=MetaStatus.COMPLETED), now=now)
        assert done.completed_at == "2024-06-10T08:00:00Z"

        reopened = metas.update_owned(owner.id, meta.id, MetaUpdate(status=MetaStatus.TO_DO))
        assert reopened.status == MetaStatus.TO_DO
        assert reopened.completed_at == "2024-06-10T08:00:00Z"

    def test_update_owned_foreign(self, metas, owner, stranger, make_meta):
        """Test a foreign meta cannot be updated."""
        meta = make_meta(owner, "Mine")

        assert metas.update_owned(stranger.id, meta.id, MetaUpdate(title="Theirs")) is None
        assert metas.get_owned(owner.id, meta.id).title == "Mine"

    def test_toggle_favorite(self, metas, owner, stranger, make_meta):
        """Test the favorite flip is owner-scoped and leaves status alone."""
        meta = make_meta(owner, status=MetaStatus.IN_PROGRESS)

        assert metas.toggle_favorite(owner.id, meta.id).favorite is True
        assert metas.toggle_favorite(owner.id, meta.id).favorite is False
        assert metas.toggle_favorite(stranger.id, meta.id) is None
        assert metas.get_owned(owner.id, meta.id).status == MetaStatus.IN_PROGRESS

    def test_delete_owned_cascades_to_steps(self, session, metas, steps, owner, make_meta, make_step):
        """Test deleting a meta deletes its steps."""
        meta = make_meta(owner)
        step = make_step(meta)

        assert metas.delete_owned(owner.id, meta.id) is True
        assert session.get(StepRow, step.id) is None
        assert steps.get_in_meta(owner.id, meta.id, step.id) is None

    def test_delete_owned_foreign(self, metas, owner, stranger, make_meta):
        """Test a foreign meta cannot be deleted."""
        meta = make_meta(owner)

        assert metas.delete_owned(stranger.id, meta.id) is False
        assert metas.get_owned(owner.id, meta.id) is not None


# =============================================================================
# Steps
# =============================================================================


class TestStepRepository:
    """Tests for two-stage step resolution."""

    def test_create_in_meta(self, steps, owner, make_meta):
        """Test a step is created under an owned meta."""
        meta = make_meta(owner)

        step = steps.create_in_meta(owner.id, meta.id, StepCreate(description="Buy shoes"))

        assert step.meta_id == meta.id
        assert step.done is False

    def test_create_in_foreign_meta(self, steps, owner, stranger, make_meta):
        """Test steps cannot be added to a foreign meta."""
        meta = make_meta(owner)

        assert steps.create_in_meta(stranger.id, meta.id, StepCreate(description="x")) is None

    def test_get_in_meta_requires_parent(self, steps, owner, make_meta, make_step):
        """Test a step is not reachable through another meta of the same owner."""
        first = make_meta(owner, "First")
        second = make_meta(owner, "Second")
        step = make_step(first)

        assert steps.get_in_meta(owner.id, first.id, step.id).id == step.id
        assert steps.get_in_meta(owner.id, second.id, step.id) is None

    def test_get_in_meta_requires_ownership(self, steps, owner, stranger, make_meta, make_step):
        """Test a foreign owner cannot reach the step."""
        meta = make_meta(owner)
        step = make_step(meta)

        assert steps.get_in_meta(stranger.id, meta.id, step.id) is None

    def test_update_in_meta(self, steps, owner, make_meta, make_step):
        """Test toggling done and renaming."""
        meta = make_meta(owner)
        step = make_step(meta, "Old")

        updated = steps.update_in_meta(
            owner.id, meta.id, step.id, StepUpdate(done=True, description="New")
        )

        assert updated.done is True
        assert updated.description == "New"

    def test_update_through_wrong_meta(self, steps, owner, make_meta, make_step):
        """Test updates through the wrong parent change nothing."""
        first = make_meta(owner, "First")
        second = make_meta(owner, "Second")
        step = make_step(first)

        assert steps.update_in_meta(owner.id, second.id, step.id, StepUpdate(done=True)) is None
        assert steps.get_in_meta(owner.id, first.id, step.id).done is False

    def test_delete_in_meta(self, steps, owner, stranger, make_meta, make_step):
        """Test deletion is scoped through the parent meta."""
        meta = make_meta(owner)
        step = make_step(meta)

        assert steps.delete_in_meta(stranger.id, meta.id, step.id) is False
        assert steps.delete_in_meta(owner.id, meta.id, step.id) is True
        assert steps.delete_in_meta(owner.id, meta.id, step.id) is False
