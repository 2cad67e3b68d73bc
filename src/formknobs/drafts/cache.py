"""Client-side draft cache with TTL expiry.

The cache is the fallback tier: it must keep working when the server is
unreachable, and its own failures (no storage, quota exceeded, corrupted
entries) must never break the wizard. Writes report success as a bool;
reads skip and remove entries that are malformed or expired.
"""

from __future__ import annotations

import logging
import time

from formknobs.config.model import WizardKind
from formknobs.drafts.models import DEFAULT_TTL_HOURS, Clock, Draft
from formknobs.drafts.storage import KeyValueStorage, storage_keys
from formknobs.exceptions import SerializationError

logger = logging.getLogger(__name__)

KEY_PREFIX = "wizard_draft"


def cache_key(kind: WizardKind, user_id: str, draft_id: str) -> str:
    return f"{KEY_PREFIX}:{kind.value}:{user_id}:{draft_id}"


class ClientDraftCache:
    """Draft cache over a :class:`KeyValueStorage`.

    Args:
        storage: Backing storage, or ``None`` when no client storage exists
            (every write then reports ``False`` and every read misses)
        ttl_hours: Age after which cached drafts are purged
        clock: Time source in epoch seconds

    Example:
        ```python
        cache = ClientDraftCache(InMemoryKeyValueStorage())
        if not cache.save(draft):
            logger.warning("Draft could not be cached")
        cache.load(WizardKind.LAND, "user-1", draft.draft_id)
        ```
    """

    def __init__(
        self,
        storage: KeyValueStorage | None,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Clock = time.time,
    ) -> None:
        self._storage = storage
        self._ttl_seconds = ttl_hours * 3600.0
        self._clock = clock

    @property
    def available(self) -> bool:
        return self._storage is not None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def save(self, draft: Draft) -> bool:
        """Write a draft, returning ``False`` instead of raising on failure."""
        if self._storage is None:
            return False
        key = cache_key(draft.wizard_kind, draft.user_id, draft.draft_id)
        try:
            self._storage.set_item(key, draft.to_json())
        except Exception:
            logger.warning(
                "Could not cache draft %s", draft.draft_id,
                exc_info=True, extra={"draft_id": draft.draft_id},
            )
            return False
        return True

    def load(self, kind: WizardKind, user_id: str, draft_id: str) -> Draft | None:
        """Read a draft, purging it if it is expired or unreadable."""
        if self._storage is None:
            return None
        key = cache_key(kind, user_id, draft_id)
        return self._read(key)

    def delete(self, kind: WizardKind, user_id: str, draft_id: str) -> bool:
        if self._storage is None:
            return False
        key = cache_key(kind, user_id, draft_id)
        try:
            existed = self._storage.get_item(key) is not None
        except SerializationError:
            existed = True
        self._storage.remove_item(key)
        return existed

    def list_drafts(self, kind: WizardKind, user_id: str) -> list[Draft]:
        """Live drafts of one kind for one user, newest first."""
        if self._storage is None:
            return []
        prefix = f"{KEY_PREFIX}:{kind.value}:{user_id}:"
        drafts = [
            draft
            for draft in (self._read(k) for k in self._keys() if k.startswith(prefix))
            if draft is not None and draft.user_id == user_id
        ]
        return sorted(drafts, key=lambda d: d.saved_at, reverse=True)

    def has_draft(self, kind: WizardKind, user_id: str) -> bool:
        return bool(self.list_drafts(kind, user_id))

    def clear_expired_drafts(self) -> int:
        """Remove every expired or unreadable cached draft.

        Returns:
            Number of entries removed
        """
        if self._storage is None:
            return 0
        removed = sum(
            1
            for key in self._keys()
            if key.startswith(f"{KEY_PREFIX}:") and self._load_entry(key)[1]
        )
        if removed:
            logger.info("Cleared %d expired or invalid cached drafts", removed)
        return removed

    def _keys(self) -> list[str]:
        assert self._storage is not None
        try:
            return storage_keys(self._storage)
        except Exception:
            logger.warning("Could not enumerate cached drafts", exc_info=True)
            return []

    def _remove(self, key: str) -> bool:
        assert self._storage is not None
        try:
            self._storage.remove_item(key)
        except Exception:
            logger.warning("Could not remove cached draft %s", key, exc_info=True)
            return False
        return True

    def _read(self, key: str) -> Draft | None:
        return self._load_entry(key)[0]

    def _load_entry(self, key: str) -> tuple[Draft | None, bool]:
        """Read one entry, purging it when unreadable or expired.

        Storage failures are logged and treated as a miss.

        Returns:
            The live draft (or ``None``) and whether the entry was removed
        """
        assert self._storage is not None
        try:
            raw = self._storage.get_item(key)
            draft = Draft.from_json(raw) if raw is not None else None
        except SerializationError:
            logger.warning("Removing unreadable cached draft %s", key)
            return None, self._remove(key)
        except Exception:
            logger.warning("Could not read cached draft %s", key, exc_info=True)
            return None, False
        if draft is None:
            return None, False
        if draft.is_expired(self._ttl_seconds, self._clock):
            logger.info(
                "Purging expired cached draft %s", draft.draft_id,
                extra={"draft_id": draft.draft_id},
            )
            return None, self._remove(key)
        return draft, False
