"""Key-value storage for memory snapshots.

The pipeline only needs ``get``/``set`` of string values under fixed keys.
Production uses a DynamoDB table with ``key``/``value`` string attributes;
development and tests use the in-memory store.
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    """Storage backend selection.

    ``backend`` is ``memory`` or ``dynamodb``.
    """
    backend: str = "memory"
    table_name: str = "safeharbor-memory"
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create config from environment variables.

        Environment variables:
            SAFEHARBOR_STORE_BACKEND: memory or dynamodb (default memory)
            SAFEHARBOR_DYNAMODB_TABLE: Table name (default safeharbor-memory)
            AWS_REGION: AWS region (default us-east-1)
            SAFEHARBOR_DYNAMODB_ENDPOINT: Optional endpoint override (local DynamoDB)
        """
        return cls(
            backend=os.getenv("SAFEHARBOR_STORE_BACKEND", "memory"),
            table_name=os.getenv("SAFEHARBOR_DYNAMODB_TABLE", "safeharbor-memory"),
            region=os.getenv("AWS_REGION", "us-east-1"),
            endpoint_url=os.getenv("SAFEHARBOR_DYNAMODB_ENDPOINT") or None,
        )


class KeyValueStore(ABC):
    """Durable string store. Implementations raise PersistenceError on I/O faults."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data


class DynamoDBKeyValueStore(KeyValueStore):
    """DynamoDB-backed store.

    boto3 calls are blocking, so they run in a worker thread.
    """

    def __init__(
        self,
        table_name: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        self.table_name = table_name
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self.endpoint_url = endpoint_url
        self._client = None

        logger.info(
            "DYNAMODB_STORE_INITIALIZED",
            extra={"table_name": table_name, "region": self.region}
        )

    @property
    def client(self):
        """Lazy initialization of the DynamoDB client."""
        if self._client is None:
            try:
                import boto3
                self._client = boto3.client(
                    "dynamodb",
                    region_name=self.region,
                    endpoint_url=self.endpoint_url,
                )
            except Exception as e:
                logger.error(
                    "DYNAMODB_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._client

    def _require_client(self):
        client = self.client
        if client is None:
            raise PersistenceError("DynamoDB client unavailable")
        return client

    async def get(self, key: str) -> Optional[str]:
        client = self._require_client()
        try:
            response = await asyncio.to_thread(
                client.get_item,
                TableName=self.table_name,
                Key={"key": {"S": key}},
                ConsistentRead=True,
            )
        except Exception as e:
            raise PersistenceError(f"DynamoDB get_item failed for {key}: {e}") from e

        item = response.get("Item")
        if not item:
            return None
        return item.get("value", {}).get("S")

    async def set(self, key: str, value: str) -> None:
        client = self._require_client()
        try:
            await asyncio.to_thread(
                client.put_item,
                TableName=self.table_name,
                Item={"key": {"S": key}, "value": {"S": value}},
            )
        except Exception as e:
            raise PersistenceError(f"DynamoDB put_item failed for {key}: {e}") from e


def create_store(config: StorageConfig) -> KeyValueStore:
    if config.backend == "dynamodb":
        return DynamoDBKeyValueStore(
            table_name=config.table_name,
            region=config.region,
            endpoint_url=config.endpoint_url,
        )
    if config.backend != "memory":
        logger.warning(
            "STORAGE_BACKEND_UNKNOWN",
            extra={"backend": config.backend, "fallback": "memory"}
        )
    return InMemoryKeyValueStore()
