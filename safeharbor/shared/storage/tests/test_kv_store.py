"""Tests for key-value snapshot stores."""
import pytest
from unittest.mock import MagicMock, patch

from safeharbor.shared.errors import PersistenceError
from safeharbor.shared.storage.kv_store import (
    DynamoDBKeyValueStore,
    InMemoryKeyValueStore,
    StorageConfig,
    create_store,
)


class TestStorageConfig:
    """Tests for StorageConfig."""

    def test_defaults(self):
        config = StorageConfig()

        assert config.backend == "memory"
        assert config.table_name == "safeharbor-memory"
        assert config.endpoint_url is None

    def test_from_env(self):
        with patch.dict("os.environ", {
            "SAFEHARBOR_STORE_BACKEND": "dynamodb",
            "SAFEHARBOR_DYNAMODB_TABLE": "memories",
            "AWS_REGION": "us-west-2",
        }):
            config = StorageConfig.from_env()

        assert config.backend == "dynamodb"
        assert config.table_name == "memories"
        assert config.region == "us-west-2"

    def test_create_store_unknown_backend_falls_back_to_memory(self):
        store = create_store(StorageConfig(backend="redis"))

        assert isinstance(store, InMemoryKeyValueStore)

    def test_create_store_dynamodb(self):
        store = create_store(StorageConfig(backend="dynamodb", table_name="t"))

        assert isinstance(store, DynamoDBKeyValueStore)
        assert store.table_name == "t"


class TestInMemoryKeyValueStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        store = InMemoryKeyValueStore()

        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self):
        store = InMemoryKeyValueStore()
        await store.set("snapshot", '{"version": 1}')

        assert await store.get("snapshot") == '{"version": 1}'
        assert "snapshot" in store


class TestDynamoDBKeyValueStore:
    """Tests for DynamoDBKeyValueStore with a mocked boto3 client."""

    @pytest.mark.asyncio
    async def test_get_reads_value_attribute(self):
        store = DynamoDBKeyValueStore(table_name="memories")
        client = MagicMock()
        client.get_item.return_value = {"Item": {"key": {"S": "k"}, "value": {"S": "v"}}}
        store._client = client

        assert await store.get("k") == "v"
        client.get_item.assert_called_once_with(
            TableName="memories",
            Key={"key": {"S": "k"}},
            ConsistentRead=True,
        )

    @pytest.mark.asyncio
    async def test_get_missing_item(self):
        store = DynamoDBKeyValueStore(table_name="memories")
        store._client = MagicMock()
        store._client.get_item.return_value = {}

        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_puts_item(self):
        store = DynamoDBKeyValueStore(table_name="memories")
        store._client = MagicMock()

        await store.set("k", "v")

        store._client.put_item.assert_called_once_with(
            TableName="memories",
            Item={"key": {"S": "k"}, "value": {"S": "v"}},
        )

    @pytest.mark.asyncio
    async def test_client_error_raises_persistence_error(self):
        store = DynamoDBKeyValueStore(table_name="memories")
        store._client = MagicMock()
        store._client.put_item.side_effect = Exception("throttled")

        with pytest.raises(PersistenceError):
            await store.set("k", "v")

    @pytest.mark.asyncio
    async def test_unavailable_client_raises_persistence_error(self):
        store = DynamoDBKeyValueStore(table_name="memories")

        with patch.object(DynamoDBKeyValueStore, "client", new=None):
            with pytest.raises(PersistenceError):
                await store.get("k")
