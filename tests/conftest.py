"""Shared fixtures for formknobs tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from formknobs.config import WizardConfig, WizardKind
from formknobs.drafts import (
    ClientDraftCache,
    DraftStore,
    InMemoryDraftBackend,
    InMemoryKeyValueStorage,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"

START_TIME = 1_700_000_000.0

PROPERTY_WIZARD: dict[str, Any] = {
    "kind": "property",
    "title": "List a property",
    "steps": [
        {
            "id": "basic_info",
            "title": "Basics",
            "schema": {
                "type": "object",
                "required": ["title", "property_type"],
                "properties": {
                    "title": {"type": "string", "minLength": 5, "maxLength": 120},
                    "property_type": {
                        "type": "string",
                        "enum": ["house", "apartment", "studio"],
                    },
                    "description": {"type": "string"},
                },
            },
            "recommended_fields": ["description"],
        },
        {
            "id": "location",
            "title": "Location",
            "schema": {
                "type": "object",
                "required": ["address"],
                "properties": {
                    "address": {
                        "type": "object",
                        "required": ["street", "city"],
                        "properties": {
                            "street": {"type": "string", "minLength": 3},
                            "city": {"type": "string"},
                            "zip": {"type": "string", "pattern": "^[0-9]{5}$"},
                        },
                    },
                },
            },
        },
        {
            "id": "pricing",
            "title": "Pricing",
            "schema": {
                "type": "object",
                "required": ["price"],
                "properties": {
                    "price": {"type": "number", "minimum": 0},
                    "currency": {"type": "string", "enum": ["USD", "EUR"]},
                    "deposit": {"type": "number", "minimum": 0},
                },
                "dependentRequired": {"deposit": ["currency"]},
            },
        },
        {
            "id": "media",
            "title": "Photos",
            "optional": True,
            "schema": {
                "type": "object",
                "required": ["photos"],
                "properties": {
                    "photos": {
                        "type": "array",
                        "minItems": 1,
                        "items": {"type": "string"},
                    },
                },
            },
        },
    ],
    "persistence": {
        "auto_save_interval": 30,
        "draft_ttl_hours": 24,
        "server_timeout": 1.0,
    },
}

VALID_PROPERTY_DATA: dict[str, Any] = {
    "title": "Sunny two bedroom flat",
    "property_type": "apartment",
    "description": "Close to the park",
    "address": {"street": "12 Main Street", "city": "Springfield", "zip": "12345"},
    "price": 250000,
    "currency": "EUR",
}


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, minutes: float = 0.0, hours: float = 0.0) -> None:
        self.now += seconds + minutes * 60 + hours * 3600


def build_config(**overrides: Any) -> WizardConfig:
    """Property wizard config with top-level keys replaced by ``overrides``."""
    data = copy.deepcopy(PROPERTY_WIZARD)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return WizardConfig.from_dict(data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def property_wizard() -> dict[str, Any]:
    return copy.deepcopy(PROPERTY_WIZARD)


@pytest.fixture
def property_config() -> WizardConfig:
    return build_config()


@pytest.fixture
def valid_data() -> dict[str, Any]:
    return copy.deepcopy(VALID_PROPERTY_DATA)


@pytest.fixture
def kv_storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def server_backend() -> InMemoryDraftBackend:
    return InMemoryDraftBackend(WizardKind.PROPERTY)


@pytest_asyncio.fixture
async def draft_store(
    server_backend: InMemoryDraftBackend,
    kv_storage: InMemoryKeyValueStorage,
    clock: FakeClock,
) -> DraftStore:
    await server_backend.initialize()
    store = DraftStore(
        WizardKind.PROPERTY,
        backend=server_backend,
        cache=ClientDraftCache(kv_storage, ttl_hours=24, clock=clock),
        server_timeout=1.0,
        clock=clock,
    )
    yield store
    await server_backend.close()


@pytest.fixture
def make_config():
    """Factory for property wizard configs with overridden sections."""
    return build_config


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR
