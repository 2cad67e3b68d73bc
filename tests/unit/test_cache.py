"""Tests for the client draft cache."""

from __future__ import annotations

from formknobs.config import WizardKind
from formknobs.drafts import (
    ClientDraftCache,
    Draft,
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    cache_key,
)
from formknobs.exceptions import StorageError


def make_draft(clock, draft_id: str = "d1", user_id: str = "user-1", **overrides) -> Draft:
    fields = {
        "draft_id": draft_id,
        "user_id": user_id,
        "wizard_kind": WizardKind.PROPERTY,
        "form_data": {"title": "Sunny flat"},
        "current_step_id": "basic_info",
        "saved_at": int(clock() * 1000),
    }
    fields.update(overrides)
    return Draft(**fields)


class FailingStorage(InMemoryKeyValueStorage):
    def set_item(self, key: str, value: str) -> None:
        raise StorageError("disk full")


class UnreadableStorage(InMemoryKeyValueStorage):
    def get_item(self, key: str) -> str | None:
        raise StorageError("storage unavailable")


class UnlistableStorage(InMemoryKeyValueStorage):
    def key(self, index: int) -> str | None:
        raise StorageError("storage unavailable")


class TestClientDraftCache:
    """Tests for ClientDraftCache."""

    def test_save_and_load(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, clock=clock)
        draft = make_draft(clock)

        assert cache.save(draft) is True
        assert kv_storage.get_item(cache_key(WizardKind.PROPERTY, "user-1", "d1")) is not None
        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") == draft
        assert cache.load(WizardKind.PROPERTY, "user-2", "d1") is None
        assert cache.load(WizardKind.LAND, "user-1", "d1") is None

    def test_live_just_before_ttl(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, ttl_hours=24, clock=clock)
        cache.save(make_draft(clock))
        clock.advance(hours=23, minutes=59)
        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") is not None

    def test_expired_draft_is_purged_on_read(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, ttl_hours=24, clock=clock)
        cache.save(make_draft(clock))
        clock.advance(hours=24, minutes=1)

        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") is None
        assert len(kv_storage) == 0

    def test_malformed_entries_are_skipped_and_removed(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, clock=clock)
        cache.save(make_draft(clock, "good"))
        kv_storage.set_item(cache_key(WizardKind.PROPERTY, "user-1", "bad"), "{not json")

        drafts = cache.list_drafts(WizardKind.PROPERTY, "user-1")

        assert [d.draft_id for d in drafts] == ["good"]
        assert kv_storage.get_item(cache_key(WizardKind.PROPERTY, "user-1", "bad")) is None

    def test_list_newest_first(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, clock=clock)
        cache.save(make_draft(clock, "old"))
        clock.advance(minutes=5)
        cache.save(make_draft(clock, "new"))
        cache.save(make_draft(clock, "other-user", user_id="user-2"))

        assert [d.draft_id for d in cache.list_drafts(WizardKind.PROPERTY, "user-1")] == [
            "new",
            "old",
        ]
        assert cache.has_draft(WizardKind.PROPERTY, "user-2")
        assert not cache.has_draft(WizardKind.BLOG, "user-1")

    def test_clear_expired_drafts(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, ttl_hours=24, clock=clock)
        cache.save(make_draft(clock, "a"))
        cache.save(make_draft(clock, "b"))
        clock.advance(hours=25)
        cache.save(make_draft(clock, "fresh"))
        kv_storage.set_item("unrelated", "keep me")

        assert cache.clear_expired_drafts() == 2
        assert cache.load(WizardKind.PROPERTY, "user-1", "fresh") is not None
        assert kv_storage.get_item("unrelated") == "keep me"

    def test_delete(self, kv_storage, clock) -> None:
        cache = ClientDraftCache(kv_storage, clock=clock)
        cache.save(make_draft(clock))
        assert cache.delete(WizardKind.PROPERTY, "user-1", "d1") is True
        assert cache.delete(WizardKind.PROPERTY, "user-1", "d1") is False

    def test_write_failure_returns_false(self, clock) -> None:
        cache = ClientDraftCache(FailingStorage(), clock=clock)
        assert cache.save(make_draft(clock)) is False

    def test_quota_exceeded_returns_false(self, clock) -> None:
        cache = ClientDraftCache(InMemoryKeyValueStorage(quota_bytes=16), clock=clock)
        assert cache.save(make_draft(clock)) is False

    def test_without_storage(self, clock) -> None:
        cache = ClientDraftCache(None, clock=clock)
        assert not cache.available
        assert cache.save(make_draft(clock)) is False
        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") is None
        assert cache.list_drafts(WizardKind.PROPERTY, "user-1") == []
        assert cache.clear_expired_drafts() == 0

    def test_undecodable_file_is_skipped_and_removed(self, tmp_path, clock) -> None:
        storage = FileKeyValueStorage(tmp_path)
        storage.set_item(cache_key(WizardKind.PROPERTY, "user-1", "bad"), "placeholder")
        bad_file = next(tmp_path.glob("*.json"))
        bad_file.write_bytes(b"\xff\xfe{garbage")
        cache = ClientDraftCache(storage, clock=clock)
        cache.save(make_draft(clock, "good"))

        drafts = cache.list_drafts(WizardKind.PROPERTY, "user-1")

        assert [d.draft_id for d in drafts] == ["good"]
        assert not bad_file.exists()

    def test_unreadable_storage_behaves_as_empty(self, clock) -> None:
        storage = UnreadableStorage()
        cache = ClientDraftCache(storage, clock=clock)

        assert cache.save(make_draft(clock)) is True
        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") is None
        assert cache.list_drafts(WizardKind.PROPERTY, "user-1") == []
        assert cache.has_draft(WizardKind.PROPERTY, "user-1") is False
        assert cache.clear_expired_drafts() == 0
        assert len(storage) == 1

    def test_key_enumeration_failure_lists_nothing(self, clock) -> None:
        cache = ClientDraftCache(UnlistableStorage(), clock=clock)
        cache.save(make_draft(clock))

        assert cache.list_drafts(WizardKind.PROPERTY, "user-1") == []
        assert cache.clear_expired_drafts() == 0
        assert cache.load(WizardKind.PROPERTY, "user-1", "d1") is not None
