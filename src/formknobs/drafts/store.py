"""Two-tier draft persistence.

:class:`DraftStore` writes drafts to the server backend first and falls
back to the client cache when the server fails, times out, or refuses
the write. Tier failures are never raised to the caller: they are
reported in the returned :class:`SaveOutcome`, so an autosave can never
crash the wizard.

Example:
    ```python
    store = DraftStore(
        WizardKind.PROPERTY,
        backend=manager.get_manager(WizardKind.PROPERTY),
        cache=ClientDraftCache(InMemoryKeyValueStorage()),
    )
    outcome = await store.save(draft)
    if outcome.degraded:
        show_banner("Saved locally, will sync later")
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from formknobs.config.model import PersistenceSettings, WizardKind
from formknobs.drafts.backend import DraftBackend
from formknobs.drafts.cache import ClientDraftCache
from formknobs.drafts.manager import DraftManager
from formknobs.drafts.models import (
    Clock,
    Draft,
    SaveOutcome,
    StorageTier,
    generate_draft_id,
    now_ms,
)
from formknobs.drafts.storage import KeyValueStorage
from formknobs.exceptions import StorageError, TimeoutError
from formknobs.retry import RetryExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DraftStore:
    """Server tier plus client cache for one wizard kind.

    Args:
        kind: Wizard kind whose drafts this store manages
        backend: Server tier, or ``None`` to run cache-only
        cache: Client tier, or ``None`` when no client storage exists
        server_timeout: Seconds a server call may take before the cache is used
        ttl_hours: Age after which drafts are purged on read
        mirror_to_cache: Also write server-saved drafts to the cache
        retry: Optional retry executor wrapped around server calls
        clock: Time source in epoch seconds
    """

    def __init__(
        self,
        kind: WizardKind,
        backend: DraftBackend | None = None,
        cache: ClientDraftCache | None = None,
        server_timeout: float = 10.0,
        ttl_hours: float = 24.0,
        mirror_to_cache: bool = True,
        retry: RetryExecutor | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.kind = kind
        self.backend = backend
        self.cache = cache
        self.server_timeout = server_timeout
        self.ttl_seconds = ttl_hours * 3600.0
        self.mirror_to_cache = mirror_to_cache
        self._retry = retry
        self._clock = clock

    @classmethod
    def create(
        cls,
        kind: WizardKind,
        persistence: PersistenceSettings,
        manager: DraftManager | None = None,
        storage: KeyValueStorage | None = None,
        retry: RetryExecutor | None = None,
        clock: Clock = time.time,
    ) -> DraftStore:
        """Assemble a store from persistence settings.

        Raises:
            UnknownDraftTypeError: If ``manager`` has no backend for ``kind``
        """
        return cls(
            kind,
            backend=manager.get_manager(kind) if manager is not None else None,
            cache=ClientDraftCache(storage, ttl_hours=persistence.draft_ttl_hours, clock=clock),
            server_timeout=persistence.server_timeout,
            ttl_hours=persistence.draft_ttl_hours,
            mirror_to_cache=persistence.mirror_to_cache,
            retry=retry,
            clock=clock,
        )

    def new_draft(
        self,
        user_id: str,
        form_data: dict[str, Any],
        current_step_id: str,
        step_progress: dict[str, bool] | None = None,
        draft_id: str | None = None,
    ) -> Draft:
        """Build a draft stamped with the current time.

        A fresh id is generated unless ``draft_id`` is given, so repeated
        saves of one session overwrite the same draft.
        """
        return Draft(
            draft_id=draft_id or generate_draft_id(self.kind, user_id, self._clock),
            user_id=user_id,
            wizard_kind=self.kind,
            form_data=form_data,
            current_step_id=current_step_id,
            step_progress=dict(step_progress or {}),
            saved_at=now_ms(self._clock),
        )

    async def save(self, draft: Draft) -> SaveOutcome:
        """Persist a draft, server first, then the cache.

        Returns:
            Where the draft ended up, plus every error met along the way.
            ``success`` is false only when both tiers failed.
        """
        errors: list[Exception] = []
        if self.backend is not None:
            try:
                draft_id = await self._server(lambda: self.backend.save(draft), "save", draft.draft_id)
            except Exception as e:
                errors.append(e)
                logger.warning(
                    "Server save failed for draft %s, falling back to cache: %s",
                    draft.draft_id, e,
                    extra={"draft_id": draft.draft_id, "wizard_kind": self.kind.value},
                )
            else:
                if self.mirror_to_cache and self.cache is not None:
                    self.cache.save(draft)
                logger.info(
                    "Saved draft %s to server", draft_id,
                    extra={"draft_id": draft_id, "wizard_kind": self.kind.value},
                )
                return SaveOutcome(True, draft_id, StorageTier.SERVER, errors)

        if self.cache is not None and self.cache.save(draft):
            logger.info(
                "Saved draft %s to client cache", draft.draft_id,
                extra={"draft_id": draft.draft_id, "wizard_kind": self.kind.value},
            )
            return SaveOutcome(True, draft.draft_id, StorageTier.CLIENT_CACHE, errors)

        errors.append(
            StorageError(
                "Draft could not be written to the client cache",
                context={"draft_id": draft.draft_id},
            )
        )
        logger.warning(
            "Draft %s could not be saved to any tier", draft.draft_id,
            extra={"draft_id": draft.draft_id, "wizard_kind": self.kind.value},
        )
        return SaveOutcome(False, draft.draft_id, StorageTier.NONE, errors)

    async def load(self, draft_id: str, user_id: str) -> Draft | None:
        """Load the newest live copy of a draft from either tier.

        Expired copies are purged from the tier they were found in and never
        returned. Server failures fall back to the cache.
        """
        server_copy: Draft | None = None
        if self.backend is not None:
            try:
                server_copy = await self._server(
                    lambda: self.backend.load(draft_id, user_id), "load", draft_id
                )
            except Exception as e:
                logger.warning(
                    "Server load failed for draft %s, using cache: %s", draft_id, e,
                    extra={"draft_id": draft_id, "wizard_kind": self.kind.value},
                )
            if server_copy is not None and server_copy.is_expired(self.ttl_seconds, self._clock):
                logger.info(
                    "Purging expired draft %s from server", draft_id,
                    extra={"draft_id": draft_id},
                )
                await self._purge_server(draft_id, user_id)
                server_copy = None

        cached_copy = self._cache_load(draft_id, user_id)
        candidates = [d for d in (server_copy, cached_copy) if d is not None]
        if not candidates:
            return None
        return max(candidates, key=lambda d: d.saved_at)

    async def delete(self, draft_id: str, user_id: str) -> bool:
        """Delete a draft from both tiers.

        Returns:
            True if either tier held the draft
        """
        removed = False
        if self.backend is not None:
            try:
                removed = bool(
                    await self._server(lambda: self.backend.delete(draft_id, user_id), "delete", draft_id)
                )
            except Exception as e:
                logger.warning(
                    "Server delete failed for draft %s: %s", draft_id, e,
                    extra={"draft_id": draft_id, "wizard_kind": self.kind.value},
                )
        if self.cache is not None:
            try:
                removed = self.cache.delete(self.kind, user_id, draft_id) or removed
            except Exception:
                logger.exception("Failed to remove cached draft %s", draft_id)
        if removed:
            logger.info("Deleted draft %s", draft_id, extra={"draft_id": draft_id})
        return removed

    async def list_drafts(self, user_id: str) -> list[Draft]:
        """Live drafts from both tiers, newest copy per id, newest first."""
        by_id: dict[str, Draft] = {}
        if self.backend is not None:
            try:
                server_drafts = await self._server(
                    lambda: self.backend.list_drafts(user_id), "list", None
                )
            except Exception as e:
                logger.warning("Server draft listing failed: %s", e)
                server_drafts = []
            for draft in server_drafts:
                if not draft.is_expired(self.ttl_seconds, self._clock):
                    by_id[draft.draft_id] = draft
        if self.cache is not None:
            try:
                cached_drafts = self.cache.list_drafts(self.kind, user_id)
            except Exception:
                logger.exception("Cached draft listing failed")
                cached_drafts = []
            for draft in cached_drafts:
                current = by_id.get(draft.draft_id)
                if current is None or draft.saved_at > current.saved_at:
                    by_id[draft.draft_id] = draft
        return sorted(by_id.values(), key=lambda d: d.saved_at, reverse=True)

    async def has_draft(self, user_id: str) -> bool:
        return bool(await self.list_drafts(user_id))

    def clear_expired_drafts(self) -> int:
        if self.cache is None:
            return 0
        try:
            return self.cache.clear_expired_drafts()
        except Exception:
            logger.exception("Failed to clear expired cached drafts")
            return 0

    async def _server(
        self, call: Callable[[], Awaitable[T]], operation: str, draft_id: str | None
    ) -> T:
        """Run a server call within ``server_timeout``.

        With a retry executor the timeout bounds the whole retry sequence.
        """
        pending = self._retry.execute(call) if self._retry is not None else call()
        try:
            return await asyncio.wait_for(pending, timeout=self.server_timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Server {operation} timed out after {self.server_timeout}s",
                context={"operation": operation, "draft_id": draft_id, "timeout": self.server_timeout},
            ) from e

    async def _purge_server(self, draft_id: str, user_id: str) -> None:
        assert self.backend is not None
        try:
            await self._server(lambda: self.backend.delete(draft_id, user_id), "delete", draft_id)
        except Exception as e:
            logger.warning("Could not purge expired draft %s: %s", draft_id, e)

    def _cache_load(self, draft_id: str, user_id: str) -> Draft | None:
        if self.cache is None:
            return None
        try:
            return self.cache.load(self.kind, user_id, draft_id)
        except Exception:
            logger.exception("Failed to read cached draft %s", draft_id)
            return None
