"""
Unit tests for StreamAdminHandler.

Tests cover:
- Stream listing across pages
- Delete and describe validation and pass-through
- Publishing with generated partition keys
- Latest messages against the in-memory backend
"""

import pytest

from kinesis_console.errors import InvalidArgumentError, UpstreamError
from kinesis_console.handler import StreamAdminHandler
from kinesis_console.streams.memory import InMemoryStreamClient


@pytest.fixture
def client():
    """Connected in-memory client with small list pages."""
    client = InMemoryStreamClient(shard_count=2, page_size=2)
    client._connected = True
    return client


@pytest.fixture
def handler(client):
    return StreamAdminHandler(client)


class TestListStreams:
    """Tests for list_streams."""

    @pytest.mark.asyncio
    async def test_concatenates_three_pages_in_order(self, client, handler):
        names = [f"stream-{i}" for i in range(6)]
        for name in names:
            client.create_stream(name)

        streams = await handler.list_streams()

        assert streams == names
        assert client.calls["ListStreams"] == 3

    @pytest.mark.asyncio
    async def test_no_streams(self, client, handler):
        assert await handler.list_streams() == []
        assert client.calls["ListStreams"] == 1

    @pytest.mark.asyncio
    async def test_page_failure_propagates(self, client, handler):
        client.create_stream("a")
        client.inject_failure("ListStreams", UpstreamError("throttled"))

        with pytest.raises(UpstreamError, match="throttled"):
            await handler.list_streams()


class TestDeleteStream:
    """Tests for delete_stream."""

    @pytest.mark.asyncio
    async def test_deletes_stream(self, client, handler):
        client.create_stream("orders")

        await handler.delete_stream("orders")

        assert await handler.list_streams() == []

    @pytest.mark.asyncio
    async def test_empty_name_makes_no_upstream_call(self, client, handler):
        with pytest.raises(InvalidArgumentError):
            await handler.delete_stream("")

        assert client.calls["DeleteStream"] == 0

    @pytest.mark.asyncio
    async def test_unknown_stream(self, handler):
        with pytest.raises(UpstreamError, match="ResourceNotFoundException"):
            await handler.delete_stream("ghost")


class TestDescribeStream:
    """Tests for describe_stream."""

    @pytest.mark.asyncio
    async def test_returns_topology(self, client, handler):
        client.create_stream("orders", shard_count=3, retention_hours=48, encryption_type="KMS")

        desc = await handler.describe_stream("orders")

        assert desc.stream_name == "orders"
        assert desc.stream_arn.endswith(":stream/orders")
        assert desc.status == "ACTIVE"
        assert desc.retention_hours == 48
        assert desc.encryption_type == "KMS"
        assert desc.shard_count == 3

    @pytest.mark.asyncio
    async def test_nonexistent_stream_keeps_upstream_message(self, client, handler):
        error = UpstreamError(
            "An error occurred (ResourceNotFoundException) when calling the "
            "DescribeStream operation: Stream ghost under account 000000000000 not found."
        )
        client.inject_failure("DescribeStream", error)

        with pytest.raises(UpstreamError) as exc_info:
            await handler.describe_stream("ghost")

        assert exc_info.value is error
        assert exc_info.value.message == error.message

    @pytest.mark.asyncio
    async def test_empty_name_makes_no_upstream_call(self, client, handler):
        with pytest.raises(InvalidArgumentError):
            await handler.describe_stream("")

        assert client.calls["DescribeStream"] == 0


class TestPublishMessage:
    """Tests for publish_message."""

    @pytest.mark.asyncio
    async def test_publishes_with_given_key(self, client, handler):
        desc = client.create_stream("orders")

        result = await handler.publish_message(desc.stream_arn, "tenant-1", "hello")

        assert result.partition_key == "tenant-1"
        assert result.shard_id in {s.shard_id for s in desc.shards}
        records = client.get_all_records("orders")
        assert len(records) == 1
        assert records[0].data == b"hello"
        assert records[0].sequence_number == result.sequence_number

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", None])
    async def test_generates_distinct_keys(self, client, handler, key):
        desc = client.create_stream("orders")

        first = await handler.publish_message(desc.stream_arn, key, "same")
        second = await handler.publish_message(desc.stream_arn, key, "same")

        assert first.partition_key
        assert second.partition_key
        assert first.partition_key != second.partition_key

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arn, data",
        [
            ("", "payload"),
            ("arn:aws:kinesis:us-east-1:000000000000:stream/orders", ""),
            ("", ""),
        ],
    )
    async def test_missing_input_makes_no_upstream_call(self, client, handler, arn, data):
        with pytest.raises(InvalidArgumentError):
            await handler.publish_message(arn, "key", data)

        assert client.calls["PutRecord"] == 0

    @pytest.mark.asyncio
    async def test_unknown_arn(self, handler):
        with pytest.raises(UpstreamError, match="not found"):
            await handler.publish_message(
                "arn:aws:kinesis:us-east-1:000000000000:stream/ghost", "k", "x"
            )


class TestLatestMessages:
    """Tests for latest_messages."""

    @pytest.mark.asyncio
    async def test_samples_oldest_records_per_shard(self, client, handler):
        client.create_stream("orders", shard_count=2)
        client.add_records("orders", "shardId-000000000000", [b"a0", b"a1", b"a2"])
        client.add_records("orders", "shardId-000000000001", [b"b0", b"b1", b"b2"])

        result = await handler.latest_messages("orders", limit=4)

        assert result.shard_count == 2
        assert [r.data for r in result.records] == [b"a0", b"a1", b"b0", b"b1"]

    @pytest.mark.asyncio
    async def test_uses_configured_default_limit(self, client):
        handler = StreamAdminHandler(client, default_snapshot_limit=2)
        client.create_stream("orders", shard_count=1)
        client.add_records("orders", "shardId-000000000000", [b"x"] * 5)

        result = await handler.latest_messages("orders")

        assert result.count == 2

    @pytest.mark.asyncio
    async def test_cursor_failure_leaks_no_records(self, client, handler):
        client.create_stream("orders", shard_count=5)
        for i in range(5):
            client.add_records("orders", f"shardId-{i:012d}", [b"r"] * 3)
        client.inject_failure(
            "GetShardIterator",
            UpstreamError("LimitExceededException"),
            shard_id="shardId-000000000001",
        )

        with pytest.raises(UpstreamError) as exc_info:
            await handler.latest_messages("orders", limit=50)

        assert exc_info.value.shard_id == "shardId-000000000001"
        assert client.calls["GetShardIterator"] == 2
        assert client.calls["GetRecords"] == 1

    @pytest.mark.asyncio
    async def test_repeated_snapshots_keep_iterators_bounded(self):
        client = InMemoryStreamClient(shard_count=2, max_iterators=8)
        client._connected = True
        handler = StreamAdminHandler(client)
        client.create_stream("orders")
        client.add_records("orders", "shardId-000000000000", [b"a"] * 10)
        client.add_records("orders", "shardId-000000000001", [b"b"] * 10)

        for _ in range(100):
            result = await handler.latest_messages("orders", limit=10)

        assert result.count == 10
        assert len(client._iterators) <= 8
