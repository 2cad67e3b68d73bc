"""Server-tier draft backends."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol, runtime_checkable

from formknobs.config.model import WizardKind
from formknobs.drafts.models import Draft

logger = logging.getLogger(__name__)


@runtime_checkable
class DraftBackend(Protocol):
    """Protocol for the authoritative (server) draft store.

    Saves are overwrite-based: saving a draft with an existing id replaces
    it, so repeating a save is harmless. Implementations raise
    :class:`~formknobs.exceptions.NetworkError`,
    :class:`~formknobs.exceptions.StorageError` or
    :class:`~formknobs.exceptions.PermissionDeniedError` on failure;
    :class:`~formknobs.drafts.store.DraftStore` turns those into cache
    fallbacks.
    """

    async def initialize(self) -> None:
        """Prepare connections. Must be idempotent."""
        ...

    async def close(self) -> None:
        ...

    async def save(self, draft: Draft) -> str:
        """Create or overwrite a draft and return its id."""
        ...

    async def load(self, draft_id: str, user_id: str | None = None) -> Draft | None:
        """Return the draft, or ``None`` if it does not exist for this user."""
        ...

    async def delete(self, draft_id: str, user_id: str | None = None) -> bool:
        """Delete a draft. Returns ``False`` if it did not exist."""
        ...

    async def list_drafts(self, user_id: str) -> list[Draft]:
        """All drafts owned by ``user_id``, newest first."""
        ...


class InMemoryDraftBackend:
    """Dict-backed :class:`DraftBackend` for tests and single-process use.

    Drafts are stored as JSON text so callers never share mutable state
    with the store.

    Example:
        ```python
        backend = InMemoryDraftBackend(WizardKind.BLOG)
        await backend.initialize()
        await backend.save(draft)
        restored = await backend.load(draft.draft_id, draft.user_id)
        ```
    """

    def __init__(self, kind: WizardKind | None = None) -> None:
        self.kind = kind
        self._drafts: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True

    async def close(self) -> None:
        async with self._lock:
            self._drafts.clear()
        self._initialized = False

    async def save(self, draft: Draft) -> str:
        payload = draft.to_json()
        async with self._lock:
            self._drafts[draft.draft_id] = payload
        logger.debug("Stored draft %s in memory", draft.draft_id)
        return draft.draft_id

    async def load(self, draft_id: str, user_id: str | None = None) -> Draft | None:
        async with self._lock:
            payload = self._drafts.get(draft_id)
        if payload is None:
            return None
        draft = Draft.from_json(payload)
        if user_id is not None and draft.user_id != user_id:
            return None
        return draft

    async def delete(self, draft_id: str, user_id: str | None = None) -> bool:
        async with self._lock:
            payload = self._drafts.get(draft_id)
            if payload is None:
                return False
            if user_id is not None and json.loads(payload).get("userId") != user_id:
                return False
            del self._drafts[draft_id]
            return True

    async def list_drafts(self, user_id: str) -> list[Draft]:
        async with self._lock:
            payloads = list(self._drafts.values())
        drafts = [d for d in (Draft.from_json(p) for p in payloads) if d.user_id == user_id]
        return sorted(drafts, key=lambda d: d.saved_at, reverse=True)

    def __len__(self) -> int:
        return len(self._drafts)
