"""Closed lookup from wizard kind to its server draft backend."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from formknobs.config.model import WizardKind
from formknobs.drafts.backend import DraftBackend, InMemoryDraftBackend
from formknobs.drafts.http_backend import HTTPDraftBackend
from formknobs.exceptions import ConfigurationError, UnknownDraftTypeError

logger = logging.getLogger(__name__)


class DraftManager:
    """Maps each :class:`WizardKind` to the backend that stores its drafts.

    The set of kinds is closed: asking for anything else raises
    :class:`UnknownDraftTypeError`.

    Example:
        ```python
        manager = DraftManager.from_config({
            "backend": "http",
            "base_url": "https://api.example.com/v1",
            "auth_token": token,
        })
        await manager.initialize()
        backend = manager.get_manager("property")
        ```
    """

    def __init__(self, backends: Mapping[WizardKind, DraftBackend]) -> None:
        self._backends = dict(backends)

    @classmethod
    def in_memory(cls) -> DraftManager:
        return cls({kind: InMemoryDraftBackend(kind) for kind in WizardKind})

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> DraftManager:
        """Build backends for every kind from one settings dict.

        Args:
            config: ``backend`` is ``"memory"`` (default) or ``"http"``; the
                HTTP backend takes the keys of
                :meth:`HTTPDraftBackend.from_config`

        Raises:
            ConfigurationError: For an unknown backend or missing ``base_url``
        """
        backend_type = str(config.get("backend", "memory")).lower()
        if backend_type == "memory":
            return cls.in_memory()
        if backend_type == "http":
            if not config.get("base_url"):
                raise ConfigurationError(
                    "HTTP draft backend requires 'base_url'", context={"backend": backend_type}
                )
            return cls({kind: HTTPDraftBackend.from_config(dict(config), kind) for kind in WizardKind})
        raise ConfigurationError(
            f"Unknown draft backend: {backend_type}",
            context={"backend": backend_type, "available": ["memory", "http"]},
        )

    @property
    def kinds(self) -> list[WizardKind]:
        return list(self._backends)

    def get_manager(self, kind: WizardKind | str) -> DraftBackend:
        """Return the backend for ``kind``.

        Raises:
            UnknownDraftTypeError: If ``kind`` is not a supported wizard kind
        """
        try:
            resolved = kind if isinstance(kind, WizardKind) else WizardKind(str(kind).lower())
        except ValueError as e:
            raise UnknownDraftTypeError(kind) from e
        backend = self._backends.get(resolved)
        if backend is None:
            raise UnknownDraftTypeError(kind)
        return backend

    async def initialize(self) -> None:
        for backend in self._backends.values():
            await backend.initialize()

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()
