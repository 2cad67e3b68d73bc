"""Tests for DraftManager."""

from __future__ import annotations

import pytest

from formknobs.config import WizardKind
from formknobs.drafts import DraftManager, HTTPDraftBackend, InMemoryDraftBackend
from formknobs.exceptions import ConfigurationError, UnknownDraftTypeError


class TestDraftManager:
    """Tests for kind-to-backend lookup."""

    def test_in_memory_covers_every_kind(self) -> None:
        manager = DraftManager.in_memory()
        assert set(manager.kinds) == set(WizardKind)
        for kind in WizardKind:
            assert isinstance(manager.get_manager(kind), InMemoryDraftBackend)

    def test_lookup_by_string(self) -> None:
        manager = DraftManager.in_memory()
        assert manager.get_manager("LAND") is manager.get_manager(WizardKind.LAND)

    def test_unknown_kind(self) -> None:
        with pytest.raises(UnknownDraftTypeError) as excinfo:
            DraftManager.in_memory().get_manager("boat")
        assert str(excinfo.value) == "Unknown draft type: boat"

    def test_kind_without_backend(self) -> None:
        manager = DraftManager({WizardKind.PROPERTY: InMemoryDraftBackend()})
        with pytest.raises(UnknownDraftTypeError):
            manager.get_manager(WizardKind.BLOG)

    def test_from_config_http(self) -> None:
        manager = DraftManager.from_config(
            {"backend": "http", "base_url": "https://api.example.com/v1/", "auth_token": "t"}
        )
        backend = manager.get_manager(WizardKind.LAND)
        assert isinstance(backend, HTTPDraftBackend)
        assert backend.collection_url == "https://api.example.com/v1/drafts/land"

    def test_from_config_defaults_to_memory(self) -> None:
        manager = DraftManager.from_config({})
        assert isinstance(manager.get_manager(WizardKind.BLOG), InMemoryDraftBackend)

    @pytest.mark.parametrize(
        "config, message",
        [
            ({"backend": "http"}, "base_url"),
            ({"backend": "redis"}, "Unknown draft backend"),
        ],
    )
    def test_from_config_errors(self, config: dict, message: str) -> None:
        with pytest.raises(ConfigurationError, match=message):
            DraftManager.from_config(config)

    @pytest.mark.asyncio
    async def test_initialize_and_close(self) -> None:
        manager = DraftManager.in_memory()
        await manager.initialize()
        await manager.close()
