"""Action sinks -- where flushed batches of actions go.

- ActionSink: abstract interface, one ``emit`` call per batch
- HttpActionSink: POSTs the batch to the goal ingestion endpoint
- LogActionSink: logs batch sizes; used when no endpoint is configured
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import httpx
import structlog

from src.hubsync.sync.schemas import Action

logger = structlog.get_logger(__name__)


class ActionSink(ABC):
    """Abstract destination for action batches."""

    @abstractmethod
    async def emit(self, actions: Sequence[Action]) -> None:
        """Deliver one batch. Raises on failure."""
        ...


class HttpActionSink(ActionSink):
    """Goal ingestion over HTTP.

    Args:
        endpoint_url: URL accepting ``{"apiKey", "actions"}`` JSON.
        api_key: Domain API key sent with every batch.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def emit(self, actions: Sequence[Action]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._endpoint_url,
                json={
                    "apiKey": self._api_key,
                    "actions": [action.to_payload() for action in actions],
                },
            )
            response.raise_for_status()
        logger.info("sink.batch_delivered", count=len(actions))


class LogActionSink(ActionSink):
    """Sink that only logs what it would have sent."""

    async def emit(self, actions: Sequence[Action]) -> None:
        names: dict[str, int] = {}
        for action in actions:
            names[action.action_name.value] = names.get(action.action_name.value, 0) + 1
        logger.info("sink.batch_logged", count=len(actions), action_names=names)
