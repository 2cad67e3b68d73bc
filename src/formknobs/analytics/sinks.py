"""Destinations for analytics events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp

from formknobs.analytics.events import AnalyticsEvent
from formknobs.exceptions import NetworkError

logger = logging.getLogger(__name__)


@runtime_checkable
class AnalyticsSink(Protocol):
    """Receives batches of events. Failures may raise; the recorder drops them."""

    async def send(self, events: list[AnalyticsEvent]) -> None:
        ...

    async def close(self) -> None:
        ...


class InMemoryAnalyticsSink:
    """Keeps delivered events in a list; useful for tests and local debugging."""

    def __init__(self) -> None:
        self.events: list[AnalyticsEvent] = []
        self.batches: list[list[AnalyticsEvent]] = []
        self._lock = asyncio.Lock()

    async def send(self, events: list[AnalyticsEvent]) -> None:
        async with self._lock:
            self.batches.append(list(events))
            self.events.extend(events)

    async def close(self) -> None:
        return None


class HTTPAnalyticsSink:
    """POSTs each event as JSON to an analytics endpoint.

    Args:
        endpoint: Full URL of the collection endpoint
        auth_token: Bearer token (optional)
        timeout: Total request timeout in seconds

    Example:
        ```python
        sink = HTTPAnalyticsSink("https://example.com/api/analytics/wizard")
        recorder = AnalyticsRecorder.create(sink=sink)
        ...
        await recorder.dispose()
        ```
    """

    def __init__(
        self,
        endpoint: str,
        auth_token: str | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self._auth_token = auth_token
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> HTTPAnalyticsSink:
        return cls(
            endpoint=config["endpoint"],
            auth_token=config.get("auth_token"),
            timeout=float(config.get("timeout", 5.0)),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            headers = {"Content-Type": "application/json"}
            if self._auth_token:
                headers["Authorization"] = f"Bearer {self._auth_token}"
            self._session = aiohttp.ClientSession(
                headers=headers, timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
        return self._session

    async def send(self, events: list[AnalyticsEvent]) -> None:
        """Send events one request at a time.

        Raises:
            NetworkError: On the first event the endpoint does not accept
        """
        session = await self._get_session()
        for event in events:
            try:
                async with session.post(self.endpoint, json=event.to_dict()) as response:
                    if response.status >= 400:
                        raise NetworkError(
                            f"Analytics endpoint returned {response.status}",
                            context={"endpoint": self.endpoint, "status": response.status},
                        )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkError(
                    f"Analytics endpoint unreachable: {e}",
                    context={"endpoint": self.endpoint},
                ) from e

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
