"""Pinecone vector index adapter."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog
from pinecone import Pinecone

from catalog_sync_service.config import get_settings
from catalog_sync_service.services.errors import VectorUpsertError

logger = structlog.get_logger()


@dataclass(frozen=True)
class VectorRecord:
    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "values": self.values, "metadata": self.metadata}


class VectorIndex(Protocol):
    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None: ...


class PineconeVectorIndex:
    """Upserts vectors into one Pinecone index.

    The SDK is synchronous, so calls run in a worker thread with a timeout.
    """

    def __init__(
        self,
        api_key: str,
        index_name: str,
        host: str | None = None,
        environment: str | None = None,
        timeout: float | None = None,
        client: Any = None,
    ):
        self.index_name = index_name
        self.host = host
        self.environment = environment
        self.timeout = timeout or get_settings().external_call_timeout
        self._client = client or Pinecone(api_key=api_key)
        self._index: Any = None

    @property
    def index(self) -> Any:
        """Lazily resolve the index handle."""
        if self._index is None:
            if self.host:
                self._index = self._client.Index(host=self.host)
            else:
                self._index = self._client.Index(self.index_name)
            logger.debug(
                "Pinecone index resolved",
                index_name=self.index_name,
                environment=self.environment,
            )
        return self._index

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        if not records:
            return
        payload = [record.to_payload() for record in records]
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.index.upsert, vectors=payload, namespace=namespace),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise VectorUpsertError(
                f"Upsert into {self.index_name}/{namespace} timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise VectorUpsertError(
                f"Upsert into {self.index_name}/{namespace} failed: {e}"
            ) from e
        logger.debug(
            "Vectors upserted",
            index_name=self.index_name,
            namespace=namespace,
            count=len(records),
        )
