"""Tests for draft records."""

from __future__ import annotations

import json
import re

import pytest

from formknobs.config import WizardKind
from formknobs.drafts import Draft, SaveOutcome, StorageTier, generate_draft_id
from formknobs.exceptions import NetworkError, SerializationError

START_MS = 1_700_000_000_000


def make_draft(**overrides) -> Draft:
    fields = {
        "draft_id": "property-1-abc-user1",
        "user_id": "user-1",
        "wizard_kind": WizardKind.PROPERTY,
        "form_data": {"title": "Sunny flat", "address": {"city": "Springfield"}},
        "current_step_id": "location",
        "step_progress": {"basic_info": True},
        "saved_at": START_MS,
    }
    fields.update(overrides)
    return Draft(**fields)


class TestGenerateDraftId:
    """Tests for draft id generation."""

    def test_format(self, clock) -> None:
        draft_id = generate_draft_id(WizardKind.LAND, "user-42@example.com", clock)
        assert re.fullmatch(r"land-1700000000000-[0-9a-f]{16}-user42ex", draft_id)

    def test_anonymous_user(self, clock) -> None:
        assert generate_draft_id("blog", "", clock).endswith("-anon")

    def test_unique_within_same_millisecond(self, clock) -> None:
        ids = {generate_draft_id(WizardKind.PROPERTY, "user-1", clock) for _ in range(1000)}
        assert len(ids) == 1000


class TestDraft:
    """Tests for Draft serialization and expiry."""

    def test_to_dict_uses_camel_case(self) -> None:
        data = make_draft().to_dict()
        assert data == {
            "draftId": "property-1-abc-user1",
            "userId": "user-1",
            "wizardKind": "property",
            "formData": {"title": "Sunny flat", "address": {"city": "Springfield"}},
            "currentStepId": "location",
            "stepProgress": {"basic_info": True},
            "savedAt": START_MS,
        }

    def test_json_round_trip(self) -> None:
        draft = make_draft()
        assert Draft.from_json(draft.to_json()) == draft

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            json.dumps([1, 2]),
            json.dumps({"draftId": "x"}),
            json.dumps({"draftId": "x", "userId": "u", "wizardKind": "boat", "savedAt": 1}),
            json.dumps({"draftId": "x", "userId": "u", "wizardKind": "land", "savedAt": "soon"}),
            json.dumps(
                {"draftId": "x", "userId": "u", "wizardKind": "land", "savedAt": 1, "formData": [1]}
            ),
        ],
    )
    def test_malformed_payloads(self, payload: str) -> None:
        with pytest.raises(SerializationError):
            Draft.from_json(payload)

    def test_unserializable_form_data(self) -> None:
        with pytest.raises(SerializationError):
            make_draft(form_data={"when": object()}).to_json()

    def test_expiry_is_strict(self, clock) -> None:
        draft = make_draft(saved_at=int(clock() * 1000))
        clock.advance(hours=24)
        assert not draft.is_expired(24 * 3600, clock)
        clock.advance(seconds=1)
        assert draft.is_expired(24 * 3600, clock)
        assert draft.age_seconds(clock) == 24 * 3600 + 1


class TestSaveOutcome:
    """Tests for SaveOutcome."""

    def test_degraded(self) -> None:
        assert not SaveOutcome(True, "d", StorageTier.SERVER).degraded
        assert SaveOutcome(True, "d", StorageTier.CLIENT_CACHE).degraded
        assert SaveOutcome(False, "d", StorageTier.NONE).degraded

    def test_to_dict(self) -> None:
        outcome = SaveOutcome(True, "d", StorageTier.CLIENT_CACHE, [NetworkError("down")])
        assert outcome.to_dict() == {
            "success": True,
            "draft_id": "d",
            "tier": "client_cache",
            "degraded": True,
            "errors": ["down"],
        }
