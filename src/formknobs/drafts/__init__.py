"""Draft persistence: server backends, client cache and the two-tier store."""

from formknobs.drafts.backend import DraftBackend, InMemoryDraftBackend
from formknobs.drafts.cache import ClientDraftCache, cache_key
from formknobs.drafts.http_backend import HTTPDraftBackend
from formknobs.drafts.manager import DraftManager
from formknobs.drafts.models import (
    Draft,
    SaveOutcome,
    StorageTier,
    generate_draft_id,
)
from formknobs.drafts.storage import (
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorage,
)
from formknobs.drafts.store import DraftStore

__all__ = [
    "ClientDraftCache",
    "Draft",
    "DraftBackend",
    "DraftManager",
    "DraftStore",
    "FileKeyValueStorage",
    "HTTPDraftBackend",
    "InMemoryDraftBackend",
    "InMemoryKeyValueStorage",
    "KeyValueStorage",
    "SaveOutcome",
    "StorageTier",
    "cache_key",
    "generate_draft_id",
]
