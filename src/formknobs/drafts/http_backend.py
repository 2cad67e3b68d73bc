"""HTTP draft backend for a remote draft service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from formknobs.config.model import WizardKind
from formknobs.drafts.models import Draft
from formknobs.exceptions import (
    NetworkError,
    PermissionDeniedError,
    SerializationError,
    StorageError,
    StorageQuotaExceededError,
)

logger = logging.getLogger(__name__)


class HTTPDraftBackend:
    """Draft backend that talks to a REST draft service.

    The expected API contract, one collection per wizard kind:

    - ``PUT /drafts/{kind}/{draft_id}`` - create or overwrite a draft
    - ``GET /drafts/{kind}/{draft_id}?userId=...`` - fetch a draft (404 if absent)
    - ``DELETE /drafts/{kind}/{draft_id}?userId=...`` - delete a draft
    - ``GET /drafts/{kind}?userId=...`` - list a user's drafts

    Bodies use the camelCase draft shape of :meth:`Draft.to_dict`.

    Failures are mapped onto the package exceptions: 401/403 raise
    :class:`PermissionDeniedError`, 413/507 raise
    :class:`StorageQuotaExceededError`, other 4xx raise
    :class:`StorageError`, and 5xx or transport failures raise
    :class:`NetworkError`.

    Args:
        base_url: Base URL of the draft service
        kind: Wizard kind whose collection this backend serves
        auth_token: Bearer token (optional)
        auth_header: Header carrying the token
        timeout: Total request timeout in seconds

    Example:
        ```python
        backend = HTTPDraftBackend("https://api.example.com/v1", WizardKind.LAND)
        await backend.initialize()
        try:
            await backend.save(draft)
        finally:
            await backend.close()
        ```
    """

    def __init__(
        self,
        base_url: str,
        kind: WizardKind,
        auth_token: str | None = None,
        auth_header: str = "Authorization",
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.kind = kind
        self._auth_token = auth_token
        self._auth_header = auth_header
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any], kind: WizardKind) -> HTTPDraftBackend:
        """Create a backend from a dict with ``base_url`` and optional
        ``auth_token``, ``auth_header`` and ``timeout`` keys."""
        return cls(
            base_url=config["base_url"],
            kind=kind,
            auth_token=config.get("auth_token"),
            auth_header=config.get("auth_header", "Authorization"),
            timeout=float(config.get("timeout", 10.0)),
        )

    @property
    def collection_url(self) -> str:
        return f"{self._base_url}/drafts/{self.kind.value}"

    async def initialize(self) -> None:
        if self._session is not None:
            return
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._auth_token:
            headers[self._auth_header] = f"Bearer {self._auth_token}"
        self._session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        )
        logger.info("HTTPDraftBackend initialized: %s", self.collection_url)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info("HTTPDraftBackend closed: %s", self.collection_url)

    def _ensure_initialized(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HTTPDraftBackend not initialized. Call initialize() first.")
        return self._session

    async def save(self, draft: Draft) -> str:
        session = self._ensure_initialized()
        url = f"{self.collection_url}/{draft.draft_id}"
        data = await self._request(session, "PUT", url, json=draft.to_dict())
        if isinstance(data, dict) and data.get("draftId"):
            return str(data["draftId"])
        return draft.draft_id

    async def load(self, draft_id: str, user_id: str | None = None) -> Draft | None:
        session = self._ensure_initialized()
        url = f"{self.collection_url}/{draft_id}"
        data = await self._request(session, "GET", url, params=_user_params(user_id))
        if data is None:
            return None
        return Draft.from_dict(data)

    async def delete(self, draft_id: str, user_id: str | None = None) -> bool:
        session = self._ensure_initialized()
        url = f"{self.collection_url}/{draft_id}"
        try:
            await self._request(
                session, "DELETE", url, params=_user_params(user_id), missing_ok=False
            )
        except _Missing:
            return False
        return True

    async def list_drafts(self, user_id: str) -> list[Draft]:
        session = self._ensure_initialized()
        data = await self._request(
            session, "GET", self.collection_url, params=_user_params(user_id)
        )
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = data.get("items") or data.get("drafts") or []
        else:
            items = []

        drafts: list[Draft] = []
        for item in items:
            try:
                drafts.append(Draft.from_dict(item))
            except SerializationError:
                logger.warning("Skipping malformed draft in %s listing", self.kind.value)
        return sorted(drafts, key=lambda d: d.saved_at, reverse=True)

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        missing_ok: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Send a request and decode the JSON body.

        Returns ``None`` for 404 (or raises ``_Missing`` when ``missing_ok``
        is false) and for empty bodies.
        """
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status == 404:
                    if missing_ok:
                        return None
                    raise _Missing()
                await self._check_response(response, method, url)
                if response.status == 204 or response.content_length == 0:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise SerializationError(
                        f"Draft service returned invalid JSON for {method} {url}",
                        context={"method": method, "url": url},
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                f"Draft service request failed: {method} {url}: {e}",
                context={"method": method, "url": url, "kind": self.kind.value},
            ) from e

    async def _check_response(
        self, response: aiohttp.ClientResponse, method: str, url: str
    ) -> None:
        status = response.status
        if status < 400:
            return
        body = await response.text()
        context = {"method": method, "url": url, "status": status, "body": body[:500]}
        if status in (401, 403):
            raise PermissionDeniedError(
                f"Draft service refused {method} {url} ({status})", context=context
            )
        if status in (413, 507):
            raise StorageQuotaExceededError(
                f"Draft service storage is full ({status})", context=context
            )
        if status >= 500:
            raise NetworkError(f"Draft service error {status} on {method} {url}", context=context)
        raise StorageError(f"Draft service rejected {method} {url} ({status})", context=context)


class _Missing(Exception):
    """Internal marker for a 404 on operations that report existence."""


def _user_params(user_id: str | None) -> dict[str, str]:
    return {"userId": user_id} if user_id else {}
