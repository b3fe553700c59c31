"""
In-memory stream client implementation for testing.

This module provides a simple in-memory stream service for:
- Unit tests
- API tests without AWS or LocalStack
- Local development (KINESIS_CONSOLE_BACKEND=memory)

Invariants:
    - All data is lost on close() or process exit
    - Records are partitioned over shards by an MD5 hash of the partition key,
      the same way Kinesis maps keys onto hash key ranges
    - Errors mimic Kinesis error messages and are raised as UpstreamError
    - Shard iterators expire after ITERATOR_TTL_SECONDS and at most
      max_iterators are held; deleting a stream drops its iterators

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the StreamClient protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..errors import StreamConnectionError, UpstreamError
from .base import (
    MAX_RECORDS_PER_GET,
    PutRecordResult,
    RecordBatch,
    ShardInfo,
    ShardIteratorType,
    StreamDescription,
    StreamPage,
    StreamRecord,
)

logger = logging.getLogger(__name__)

HASH_KEY_SPACE = 2**128

# Kinesis expires shard iterators five minutes after they are issued
ITERATOR_TTL_SECONDS = 300.0
DEFAULT_MAX_ITERATORS = 10000


@dataclass
class InMemoryShard:
    """In-memory shard storage."""

    info: ShardInfo
    records: List[StreamRecord] = field(default_factory=list)


@dataclass
class InMemoryStream:
    """In-memory stream storage."""

    name: str
    arn: str
    retention_hours: int
    encryption_type: Optional[str]
    status: str
    shards: List[InMemoryShard] = field(default_factory=list)
    next_sequence: int = 0


class InMemoryStreamClient:
    """In-memory implementation of StreamClient for testing.

    Attributes:
        shard_count: Default number of shards for create_stream()
        page_size: Stream names returned per list_streams_page() call
        calls: Number of calls per operation name (e.g. "GetShardIterator")
        max_iterators: Open iterators kept before the oldest are evicted
        clock: Monotonic time source used for iterator expiry

    Failure injection:
        inject_failure() makes an operation raise, optionally only for one
        shard. set_missing_iterator() makes GetShardIterator succeed without
        returning an iterator for a shard.

    Example:
        >>> client = InMemoryStreamClient(shard_count=2)
        >>> await client.connect()
        >>> desc = client.create_stream("orders")
        >>> await client.put_record(desc.stream_arn, "k1", b"hello")
    """

    def __init__(
        self,
        shard_count: int = 2,
        page_size: int = 100,
        region: str = "us-east-1",
        account_id: str = "000000000000",
        max_iterators: int = DEFAULT_MAX_ITERATORS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.shard_count = shard_count
        self.page_size = page_size
        self.region = region
        self.account_id = account_id
        self.max_iterators = max_iterators
        self.clock = clock
        self.calls: Counter[str] = Counter()
        self._streams: Dict[str, InMemoryStream] = {}
        # iterator -> (stream, shard, position, issued_at), oldest first
        self._iterators: OrderedDict[str, Tuple[str, str, int, float]] = OrderedDict()
        self._failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self._missing_iterators: Set[str] = set()
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryStreamClient connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._streams.clear()
        self._iterators.clear()
        logger.debug("InMemoryStreamClient closed")

    # StreamDirectory

    async def list_streams_page(self, next_token: Optional[str] = None) -> StreamPage:
        """Return one page of stream names in creation order."""
        self._enter("ListStreams")

        start = 0
        if next_token:
            try:
                start = int(next_token)
            except ValueError:
                raise UpstreamError(
                    f"An error occurred (InvalidArgumentException) when calling the "
                    f"ListStreams operation: Invalid NextToken {next_token}",
                    operation="ListStreams",
                )

        names = list(self._streams)
        page = names[start : start + self.page_size]
        end = start + len(page)
        return StreamPage(
            stream_names=tuple(page),
            next_token=str(end) if end < len(names) else None,
        )

    async def describe_stream(self, stream_name: str) -> StreamDescription:
        """Describe a stream with all of its shards."""
        self._enter("DescribeStream")
        return self._describe(self._get_stream(stream_name, "DescribeStream"))

    async def delete_stream(self, stream_name: str) -> None:
        """Delete a stream and its records."""
        self._enter("DeleteStream")
        async with self._lock:
            self._get_stream(stream_name, "DeleteStream")
            del self._streams[stream_name]
            self._iterators = OrderedDict(
                (it, entry) for it, entry in self._iterators.items() if entry[0] != stream_name
            )
        logger.debug("In-memory stream deleted", extra={"stream": stream_name})

    # ShardCursorOpener

    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: ShardIteratorType,
    ) -> Optional[str]:
        """Open an iterator at the oldest record or past the newest one."""
        self._enter("GetShardIterator", shard_id)

        stream = self._get_stream(stream_name, "GetShardIterator")
        shard = self._get_shard(stream, shard_id)

        if shard_id in self._missing_iterators:
            return None

        if ShardIteratorType(iterator_type) == ShardIteratorType.TRIM_HORIZON:
            position = 0
        else:
            position = len(shard.records)

        return self._register_iterator(stream_name, shard_id, position)

    # RecordFetcher

    async def get_records(self, iterator: str, limit: Optional[int] = None) -> RecordBatch:
        """Read up to limit records from the iterator position."""
        self._expire_iterators()
        entry = self._iterators.get(iterator)
        self._enter("GetRecords", entry[1] if entry else None)

        if entry is None:
            raise UpstreamError(
                f"An error occurred (ExpiredIteratorException) when calling the "
                f"GetRecords operation: Iterator {iterator} has expired or is invalid",
                operation="GetRecords",
            )

        stream_name, shard_id, position, _ = entry
        stream = self._get_stream(stream_name, "GetRecords")
        shard = self._get_shard(stream, shard_id, "GetRecords")

        batch_limit = limit if limit is not None else MAX_RECORDS_PER_GET
        records = shard.records[position : position + batch_limit]
        next_position = position + len(records)

        return RecordBatch(
            records=list(records),
            next_iterator=self._register_iterator(stream_name, shard_id, next_position),
            millis_behind_latest=0,
        )

    # RecordPublisher

    async def put_record(
        self,
        stream_arn: str,
        partition_key: str,
        data: bytes,
    ) -> PutRecordResult:
        """Append a record to the shard owning the partition key's hash."""
        self._enter("PutRecord")

        async with self._lock:
            stream = self._get_stream_by_arn(stream_arn)
            if not stream.shards:
                raise UpstreamError(
                    f"An error occurred (ResourceInUseException) when calling the "
                    f"PutRecord operation: Stream {stream.name} has no open shards",
                    operation="PutRecord",
                )

            shard = stream.shards[self._shard_index_for_key(partition_key, len(stream.shards))]
            sequence_number = f"{stream.next_sequence:056d}"
            stream.next_sequence += 1

            shard.records.append(
                StreamRecord(
                    shard_id=shard.info.shard_id,
                    partition_key=partition_key,
                    sequence_number=sequence_number,
                    approximate_arrival_timestamp=datetime.now(timezone.utc),
                    data=bytes(data),
                )
            )

        logger.debug(
            "Record appended to in-memory stream",
            extra={"stream": stream.name, "key": partition_key, "shard": shard.info.shard_id},
        )

        return PutRecordResult(
            shard_id=shard.info.shard_id,
            sequence_number=sequence_number,
            partition_key=partition_key,
        )

    # Testing helpers

    def create_stream(
        self,
        name: str,
        shard_count: Optional[int] = None,
        retention_hours: int = 24,
        encryption_type: Optional[str] = "NONE",
        status: str = "ACTIVE",
    ) -> StreamDescription:
        """Create a stream with evenly split hash key ranges (testing helper)."""
        count = self.shard_count if shard_count is None else shard_count
        shards = []
        for i in range(count):
            start = HASH_KEY_SPACE * i // count
            end = HASH_KEY_SPACE * (i + 1) // count - 1
            shards.append(
                InMemoryShard(
                    info=ShardInfo(
                        shard_id=f"shardId-{i:012d}",
                        starting_hash_key=str(start),
                        ending_hash_key=str(end),
                        starting_sequence_number=f"{0:056d}",
                    )
                )
            )

        stream = InMemoryStream(
            name=name,
            arn=f"arn:aws:kinesis:{self.region}:{self.account_id}:stream/{name}",
            retention_hours=retention_hours,
            encryption_type=encryption_type,
            status=status,
            shards=shards,
        )
        self._streams[name] = stream
        return self._describe(stream)

    def add_records(self, stream_name: str, shard_id: str, payloads: List[bytes]) -> None:
        """Append records directly to one shard (testing helper)."""
        stream = self._get_stream(stream_name, "PutRecord")
        shard = self._get_shard(stream, shard_id, "PutRecord")
        for payload in payloads:
            shard.records.append(
                StreamRecord(
                    shard_id=shard_id,
                    partition_key=f"key-{stream.next_sequence}",
                    sequence_number=f"{stream.next_sequence:056d}",
                    approximate_arrival_timestamp=datetime.now(timezone.utc),
                    data=payload,
                )
            )
            stream.next_sequence += 1

    def get_all_records(self, stream_name: str) -> List[StreamRecord]:
        """Get all records of a stream, shard by shard (testing helper)."""
        stream = self._streams.get(stream_name)
        if stream is None:
            return []
        return [r for shard in stream.shards for r in shard.records]

    def inject_failure(
        self,
        operation: str,
        exception: Exception,
        shard_id: Optional[str] = None,
    ) -> None:
        """Make an operation raise until clear_failures() (testing helper).

        Args:
            operation: Operation name, e.g. "GetShardIterator"
            exception: Exception to raise
            shard_id: Restrict the failure to one shard
        """
        self._failures[(operation, shard_id)] = exception

    def set_missing_iterator(self, shard_id: str) -> None:
        """Make GetShardIterator return no iterator for a shard (testing helper)."""
        self._missing_iterators.add(shard_id)

    def clear_failures(self) -> None:
        """Remove all injected failures (testing helper)."""
        self._failures.clear()
        self._missing_iterators.clear()

    # Internals

    def _enter(self, operation: str, shard_id: Optional[str] = None) -> None:
        if not self._connected:
            raise StreamConnectionError("Not connected", operation=operation)

        self.calls[operation] += 1

        failure = self._failures.get((operation, shard_id)) or self._failures.get(
            (operation, None)
        )
        if failure is not None:
            raise failure

    def _get_stream(self, stream_name: str, operation: str) -> InMemoryStream:
        stream = self._streams.get(stream_name)
        if stream is None:
            raise UpstreamError(
                f"An error occurred (ResourceNotFoundException) when calling the "
                f"{operation} operation: Stream {stream_name} under account "
                f"{self.account_id} not found.",
                operation=operation,
            )
        return stream

    def _get_stream_by_arn(self, stream_arn: str) -> InMemoryStream:
        for stream in self._streams.values():
            if stream.arn == stream_arn:
                return stream
        raise UpstreamError(
            f"An error occurred (ResourceNotFoundException) when calling the "
            f"PutRecord operation: Stream {stream_arn} not found.",
            operation="PutRecord",
        )

    def _get_shard(
        self,
        stream: InMemoryStream,
        shard_id: str,
        operation: str = "GetShardIterator",
    ) -> InMemoryShard:
        for shard in stream.shards:
            if shard.info.shard_id == shard_id:
                return shard
        raise UpstreamError(
            f"An error occurred (ResourceNotFoundException) when calling the "
            f"{operation} operation: Shard {shard_id} in stream {stream.name} "
            f"under account {self.account_id} does not exist",
            shard_id=shard_id,
            operation=operation,
        )

    def _register_iterator(self, stream_name: str, shard_id: str, position: int) -> str:
        self._expire_iterators()
        iterator = uuid.uuid4().hex
        self._iterators[iterator] = (stream_name, shard_id, position, self.clock())
        while len(self._iterators) > self.max_iterators:
            self._iterators.popitem(last=False)
        return iterator

    def _expire_iterators(self) -> None:
        cutoff = self.clock() - ITERATOR_TTL_SECONDS
        while self._iterators:
            oldest = next(iter(self._iterators.values()))
            if oldest[3] > cutoff:
                break
            self._iterators.popitem(last=False)

    def _describe(self, stream: InMemoryStream) -> StreamDescription:
        return StreamDescription(
            stream_name=stream.name,
            stream_arn=stream.arn,
            status=stream.status,
            retention_hours=stream.retention_hours,
            encryption_type=stream.encryption_type,
            shards=tuple(shard.info for shard in stream.shards),
        )

    @staticmethod
    def _shard_index_for_key(key: str, shard_count: int) -> int:
        """Map a partition key onto a shard via its 128-bit MD5 hash key."""
        hash_key = int.from_bytes(hashlib.md5(key.encode("utf-8")).digest(), "big")
        return hash_key * shard_count // HASH_KEY_SPACE
