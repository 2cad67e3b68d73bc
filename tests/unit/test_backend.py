"""Tests for InMemoryDraftBackend."""

from __future__ import annotations

import pytest

from formknobs.config import WizardKind
from formknobs.drafts import Draft, DraftBackend, InMemoryDraftBackend


def make_draft(draft_id: str, user_id: str = "user-1", saved_at: int = 1000) -> Draft:
    return Draft(
        draft_id=draft_id,
        user_id=user_id,
        wizard_kind=WizardKind.LAND,
        form_data={"address": "1 Long Road"},
        current_step_id="location",
        saved_at=saved_at,
    )


class TestInMemoryDraftBackend:
    """Tests for the in-memory server tier."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryDraftBackend(), DraftBackend)

    @pytest.mark.asyncio
    async def test_save_load(self) -> None:
        backend = InMemoryDraftBackend(WizardKind.LAND)
        await backend.initialize()

        assert await backend.save(make_draft("d1")) == "d1"
        loaded = await backend.load("d1", "user-1")

        assert loaded == make_draft("d1")
        assert await backend.load("d1", "someone-else") is None
        assert await backend.load("missing") is None

    @pytest.mark.asyncio
    async def test_stored_copy_is_isolated(self) -> None:
        backend = InMemoryDraftBackend()
        draft = make_draft("d1")
        await backend.save(draft)
        draft.form_data["address"] = "changed"

        assert (await backend.load("d1")).form_data == {"address": "1 Long Road"}

    @pytest.mark.asyncio
    async def test_delete_checks_owner(self) -> None:
        backend = InMemoryDraftBackend()
        await backend.save(make_draft("d1"))

        assert await backend.delete("d1", "someone-else") is False
        assert await backend.delete("d1", "user-1") is True
        assert await backend.delete("d1", "user-1") is False

    @pytest.mark.asyncio
    async def test_list_newest_first(self) -> None:
        backend = InMemoryDraftBackend()
        await backend.save(make_draft("old", saved_at=1000))
        await backend.save(make_draft("new", saved_at=2000))
        await backend.save(make_draft("theirs", user_id="user-2"))

        assert [d.draft_id for d in await backend.list_drafts("user-1")] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_close_clears(self) -> None:
        backend = InMemoryDraftBackend()
        await backend.save(make_draft("d1"))
        await backend.close()
        assert len(backend) == 0
