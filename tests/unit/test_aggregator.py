"""
Unit tests for the multi-shard snapshot aggregator.

Tests cover:
- Per-shard quota computation
- Truncation and shard tagging
- Abort-all behavior on cursor and fetch failures
- Input validation and defaults
- Shard read state machine
"""

import pytest

from kinesis_console.errors import InvalidArgumentError, UpstreamError
from kinesis_console.snapshot import (
    ShardRead,
    ShardReadState,
    SnapshotAggregator,
    compute_per_shard_quota,
)
from kinesis_console.streams.base import (
    RecordBatch,
    ShardInfo,
    ShardIteratorType,
    StreamDescription,
    StreamRecord,
)


def shard_id(i: int) -> str:
    return f"shardId-{i:012d}"


class FakeDirectory:
    """Directory returning a fixed topology."""

    def __init__(self, shard_count: int, error: Exception | None = None) -> None:
        self.shard_count = shard_count
        self.error = error
        self.calls = 0

    async def describe_stream(self, stream_name):
        self.calls += 1
        if self.error:
            raise self.error
        return StreamDescription(
            stream_name=stream_name,
            stream_arn=f"arn:aws:kinesis:us-east-1:000000000000:stream/{stream_name}",
            status="ACTIVE",
            retention_hours=24,
            shards=tuple(ShardInfo(shard_id=shard_id(i)) for i in range(self.shard_count)),
        )


class FakeCursors:
    """Cursor opener with per-shard failure and missing-iterator switches."""

    def __init__(self, fail: set | None = None, missing: set | None = None) -> None:
        self.fail = fail or set()
        self.missing = missing or set()
        self.opened: list[tuple[str, str, ShardIteratorType]] = []

    async def get_shard_iterator(self, stream_name, shard, iterator_type):
        self.opened.append((stream_name, shard, iterator_type))
        if shard in self.fail:
            raise UpstreamError(f"Shard {shard} is unavailable", operation="GetShardIterator")
        if shard in self.missing:
            return None
        return f"iterator:{shard}"


class FakeFetcher:
    """Fetcher returning `per_shard` records per call, ignoring the limit hint."""

    def __init__(self, per_shard: int = 100, fail: set | None = None) -> None:
        self.per_shard = per_shard
        self.fail = fail or set()
        self.fetched: list[tuple[str, int | None]] = []

    async def get_records(self, iterator, limit=None):
        shard = iterator.split(":", 1)[1]
        self.fetched.append((shard, limit))
        if shard in self.fail:
            raise UpstreamError("Rate exceeded for shard", operation="GetRecords")
        return RecordBatch(
            records=[
                StreamRecord(
                    shard_id="",
                    partition_key=f"pk-{n}",
                    sequence_number=f"{shard}-{n:04d}",
                    approximate_arrival_timestamp=None,
                    data=f"payload-{n}".encode(),
                )
                for n in range(self.per_shard)
            ],
            next_iterator=f"iterator:{shard}",
        )


def make_aggregator(shards=3, per_shard=100, cursors=None, fetcher=None, directory=None):
    directory = directory or FakeDirectory(shards)
    cursors = cursors or FakeCursors()
    fetcher = fetcher or FakeFetcher(per_shard)
    return SnapshotAggregator(directory, cursors, fetcher), directory, cursors, fetcher


class TestQuota:
    """Tests for compute_per_shard_quota."""

    def test_even_split_rounds_down(self):
        assert compute_per_shard_quota(50, 3) == 16

    def test_floor_of_one_when_more_shards_than_limit(self):
        assert compute_per_shard_quota(2, 5) == 1

    def test_exact_division(self):
        assert compute_per_shard_quota(40, 4) == 10

    def test_no_shards(self):
        assert compute_per_shard_quota(50, 0) == 0


class TestSnapshot:
    """Tests for SnapshotAggregator.snapshot."""

    @pytest.mark.asyncio
    async def test_quota_bounds_each_shard(self):
        """L=50, S=3 gives 16 records from each shard."""
        aggregator, _, _, _ = make_aggregator(shards=3)

        result = await aggregator.snapshot("orders", limit=50)

        assert result.shard_count == 3
        assert result.per_shard_quota == 16
        assert result.count == 48
        for i in range(3):
            assert sum(1 for r in result.records if r.shard_id == shard_id(i)) == 16

    @pytest.mark.asyncio
    async def test_fairness_floor_may_exceed_limit(self):
        """L=2, S=5 gives one record per shard, five in total."""
        aggregator, _, _, _ = make_aggregator(shards=5)

        result = await aggregator.snapshot("orders", limit=2)

        assert result.per_shard_quota == 1
        assert result.count == 5
        assert [r.shard_id for r in result.records] == [shard_id(i) for i in range(5)]

    @pytest.mark.asyncio
    async def test_total_never_exceeds_shards_times_quota(self):
        for shards, limit in [(1, 50), (3, 10), (7, 20), (4, 3)]:
            aggregator, _, _, _ = make_aggregator(shards=shards)
            result = await aggregator.snapshot("orders", limit=limit)
            assert result.count <= shards * compute_per_shard_quota(limit, shards)

    @pytest.mark.asyncio
    async def test_short_shards_contribute_what_they_have(self):
        aggregator, _, _, _ = make_aggregator(shards=2, per_shard=3)

        result = await aggregator.snapshot("orders", limit=50)

        assert result.count == 6

    @pytest.mark.asyncio
    async def test_keeps_first_records_in_fetch_order(self):
        aggregator, _, _, _ = make_aggregator(shards=1)

        result = await aggregator.snapshot("orders", limit=3)

        assert [r.sequence_number for r in result.records] == [
            f"{shard_id(0)}-0000",
            f"{shard_id(0)}-0001",
            f"{shard_id(0)}-0002",
        ]
        assert result.records[0].data == b"payload-0"

    @pytest.mark.asyncio
    async def test_zero_shards_returns_empty_result(self):
        aggregator, _, cursors, fetcher = make_aggregator(shards=0)

        result = await aggregator.snapshot("provisioning", limit=50)

        assert result.count == 0
        assert result.shard_count == 0
        assert result.records == []
        assert cursors.opened == []
        assert fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_opens_trim_horizon_cursors_in_topology_order(self):
        aggregator, _, cursors, _ = make_aggregator(shards=3)

        await aggregator.snapshot("orders", limit=9)

        assert cursors.opened == [
            ("orders", shard_id(i), ShardIteratorType.TRIM_HORIZON) for i in range(3)
        ]

    @pytest.mark.asyncio
    async def test_passes_quota_as_fetch_limit(self):
        aggregator, _, _, fetcher = make_aggregator(shards=2)

        await aggregator.snapshot("orders", limit=10)

        assert fetcher.fetched == [(shard_id(0), 5), (shard_id(1), 5)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [None, 0, -5])
    async def test_default_limit(self, limit):
        aggregator, _, _, _ = make_aggregator(shards=1)

        result = await aggregator.snapshot("orders", limit=limit)

        assert result.count == 50

    @pytest.mark.asyncio
    async def test_configured_default_limit(self):
        aggregator = SnapshotAggregator(
            FakeDirectory(2), FakeCursors(), FakeFetcher(), default_limit=10
        )

        result = await aggregator.snapshot("orders")

        assert result.count == 10

    @pytest.mark.asyncio
    async def test_empty_stream_name_makes_no_upstream_call(self):
        aggregator, directory, cursors, _ = make_aggregator()

        with pytest.raises(InvalidArgumentError):
            await aggregator.snapshot("", limit=10)

        assert directory.calls == 0
        assert cursors.opened == []


class TestSnapshotFailures:
    """Tests for the abort-all failure policy."""

    @pytest.mark.asyncio
    async def test_describe_failure_propagates_unchanged(self):
        error = UpstreamError("Stream missing under account 000000000000 not found.")
        aggregator, _, cursors, _ = make_aggregator(directory=FakeDirectory(3, error=error))

        with pytest.raises(UpstreamError) as exc_info:
            await aggregator.snapshot("missing", limit=10)

        assert exc_info.value is error
        assert cursors.opened == []

    @pytest.mark.asyncio
    async def test_cursor_failure_on_shard_two_of_five_aborts(self):
        cursors = FakeCursors(fail={shard_id(1)})
        aggregator, _, _, fetcher = make_aggregator(shards=5, cursors=cursors)

        with pytest.raises(UpstreamError) as exc_info:
            await aggregator.snapshot("orders", limit=50)

        error = exc_info.value
        assert error.shard_id == shard_id(1)
        assert shard_id(1) in error.message
        assert f"Shard {shard_id(1)} is unavailable" in error.message
        # shards 3-5 are never touched
        assert [opened[1] for opened in cursors.opened] == [shard_id(0), shard_id(1)]
        assert [fetched[0] for fetched in fetcher.fetched] == [shard_id(0)]

    @pytest.mark.asyncio
    async def test_missing_iterator_aborts(self):
        cursors = FakeCursors(missing={shard_id(2)})
        aggregator, _, _, fetcher = make_aggregator(shards=4, cursors=cursors)

        with pytest.raises(UpstreamError) as exc_info:
            await aggregator.snapshot("orders", limit=8)

        assert exc_info.value.shard_id == shard_id(2)
        assert "missing shard iterator" in exc_info.value.message
        assert len(fetcher.fetched) == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_aborts(self):
        fetcher = FakeFetcher(fail={shard_id(0)})
        aggregator, _, cursors, _ = make_aggregator(shards=3, fetcher=fetcher)

        with pytest.raises(UpstreamError) as exc_info:
            await aggregator.snapshot("orders", limit=9)

        error = exc_info.value
        assert error.shard_id == shard_id(0)
        assert error.operation == "GetRecords"
        assert "Rate exceeded for shard" in error.message
        assert len(cursors.opened) == 1


class TestShardRead:
    """Tests for the shard read state machine."""

    def test_happy_path_transitions(self):
        read = ShardRead(shard_id=shard_id(0))
        for state in (
            ShardReadState.CURSOR_OPENED,
            ShardReadState.FETCHED,
            ShardReadState.TRUNCATED,
            ShardReadState.AGGREGATED,
        ):
            read.advance(state)
        assert read.state == ShardReadState.AGGREGATED

    def test_skipping_a_state_is_rejected(self):
        read = ShardRead(shard_id=shard_id(0))
        with pytest.raises(RuntimeError):
            read.advance(ShardReadState.FETCHED)

    def test_abort_records_error(self):
        read = ShardRead(shard_id=shard_id(0))
        read.advance(ShardReadState.CURSOR_OPENED)

        error = read.abort(UpstreamError("boom", shard_id=shard_id(0)))

        assert read.state == ShardReadState.ABORTED
        assert read.error is error

    def test_aborted_is_terminal(self):
        read = ShardRead(shard_id=shard_id(0))
        read.abort(UpstreamError("boom"))
        with pytest.raises(RuntimeError):
            read.advance(ShardReadState.CURSOR_OPENED)

    def test_truncated_cannot_abort(self):
        read = ShardRead(shard_id=shard_id(0))
        read.advance(ShardReadState.CURSOR_OPENED)
        read.advance(ShardReadState.FETCHED)
        read.advance(ShardReadState.TRUNCATED)
        with pytest.raises(RuntimeError):
            read.abort(UpstreamError("late"))
