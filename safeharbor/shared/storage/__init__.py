"""Durable key-value storage used for memory snapshots."""
from .kv_store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    DynamoDBKeyValueStore,
    StorageConfig,
    create_store,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "DynamoDBKeyValueStore",
    "StorageConfig",
    "create_store",
]
