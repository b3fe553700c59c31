"""
Base protocols and types for the stream service abstraction.

This module defines the collaborator protocols the console depends on,
along with common types for stream topology, records and publish results.

The console never talks to the stream service directly. It goes through:
- StreamDirectory: list, describe and delete streams
- ShardCursorOpener: obtain a shard iterator
- RecordFetcher: read one batch of records from an iterator
- RecordPublisher: put a single record

StreamClient bundles all four with a connection lifecycle.

Invariants:
    - Every upstream failure is raised as UpstreamError
    - StreamDescription.shards preserves the upstream listing order
    - Shard iterators are opaque and never persisted

How to change safely:
    - Protocol changes require updating all implementations
    - Keep InMemoryStreamClient in sync so the tests stay meaningful
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    AsyncIterator,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

# GetRecords accepts at most 10000 records per call
MAX_RECORDS_PER_GET = 10000


class ShardIteratorType(str, Enum):
    """Starting position for a shard iterator."""

    TRIM_HORIZON = "TRIM_HORIZON"
    LATEST = "LATEST"


@dataclass(frozen=True)
class ShardInfo:
    """A shard as reported by the stream topology.

    Attributes:
        shard_id: Shard identifier (e.g. "shardId-000000000001")
        parent_shard_id: Parent shard after a split or merge
        starting_hash_key: Lowest hash key served by the shard
        ending_hash_key: Highest hash key served by the shard
        starting_sequence_number: First sequence number of the shard
    """

    shard_id: str
    parent_shard_id: Optional[str] = None
    starting_hash_key: Optional[str] = None
    ending_hash_key: Optional[str] = None
    starting_sequence_number: Optional[str] = None


@dataclass(frozen=True)
class StreamDescription:
    """Stream metadata and shard topology.

    Attributes:
        stream_name: Stream name
        stream_arn: Stream ARN (used for publishing)
        status: Stream status (CREATING, ACTIVE, DELETING, UPDATING)
        retention_hours: Retention period in hours
        encryption_type: NONE, KMS, or None when not reported
        shards: Shards in the order returned by the upstream
    """

    stream_name: str
    stream_arn: str
    status: str
    retention_hours: int
    encryption_type: Optional[str] = None
    shards: Tuple[ShardInfo, ...] = ()

    @property
    def shard_count(self) -> int:
        return len(self.shards)


@dataclass(frozen=True)
class StreamRecord:
    """A record read from one shard.

    Attributes:
        shard_id: Shard the record was read from
        partition_key: Partition key given at publish time
        sequence_number: Sequence number within the shard
        approximate_arrival_timestamp: When the service accepted the record
        data: Raw payload bytes
    """

    shard_id: str
    partition_key: str
    sequence_number: str
    approximate_arrival_timestamp: Optional[datetime]
    data: bytes

    def __str__(self) -> str:
        return f"StreamRecord(shard={self.shard_id}, seq={self.sequence_number})"


@dataclass
class RecordBatch:
    """One GetRecords response.

    Records carry an empty shard_id; the caller knows which shard the
    iterator belonged to and tags them.
    """

    records: List[StreamRecord] = field(default_factory=list)
    next_iterator: Optional[str] = None
    millis_behind_latest: Optional[int] = None


@dataclass(frozen=True)
class StreamPage:
    """One page of stream names."""

    stream_names: Tuple[str, ...]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class PutRecordResult:
    """Result of publishing one record."""

    shard_id: str
    sequence_number: str
    partition_key: str


@runtime_checkable
class StreamDirectory(Protocol):
    """Enumerates, describes and deletes streams."""

    @abstractmethod
    async def list_streams_page(self, next_token: Optional[str] = None) -> StreamPage:
        """Fetch one page of stream names.

        Args:
            next_token: Token from the previous page, None for the first page

        Raises:
            UpstreamError: If the listing fails
        """
        ...

    @abstractmethod
    async def describe_stream(self, stream_name: str) -> StreamDescription:
        """Describe a stream including its complete shard list.

        Raises:
            UpstreamError: If the stream does not exist or the call fails
        """
        ...

    @abstractmethod
    async def delete_stream(self, stream_name: str) -> None:
        """Delete a stream by name.

        Raises:
            UpstreamError: If the deletion fails
        """
        ...


@runtime_checkable
class ShardCursorOpener(Protocol):
    """Opens read cursors (shard iterators)."""

    @abstractmethod
    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: ShardIteratorType,
    ) -> Optional[str]:
        """Open an iterator for one shard.

        Returns:
            The iterator, or None if the service returned none

        Raises:
            UpstreamError: If the call fails
        """
        ...


@runtime_checkable
class RecordFetcher(Protocol):
    """Reads record batches from a shard iterator."""

    @abstractmethod
    async def get_records(self, iterator: str, limit: Optional[int] = None) -> RecordBatch:
        """Fetch one batch of records.

        Args:
            iterator: Shard iterator
            limit: Upper bound hint for the batch size

        Raises:
            UpstreamError: If the call fails
        """
        ...


@runtime_checkable
class RecordPublisher(Protocol):
    """Publishes single records."""

    @abstractmethod
    async def put_record(
        self,
        stream_arn: str,
        partition_key: str,
        data: bytes,
    ) -> PutRecordResult:
        """Put one record on the stream.

        Raises:
            UpstreamError: If the put fails
        """
        ...


@runtime_checkable
class StreamClient(StreamDirectory, ShardCursorOpener, RecordFetcher, RecordPublisher, Protocol):
    """Full stream service client with connection lifecycle."""

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the stream service.

        Raises:
            StreamConnectionError: If the connection cannot be established
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected."""
        ...


async def iter_stream_names(directory: StreamDirectory) -> AsyncIterator[str]:
    """Yield every stream name, following pagination until exhausted.

    Args:
        directory: Stream directory to list

    Yields:
        Stream names in upstream order

    Raises:
        UpstreamError: If any page fails; names already yielded are not
            retracted, so callers that need all-or-nothing must collect first
    """
    next_token: Optional[str] = None
    while True:
        page = await directory.list_streams_page(next_token)
        for name in page.stream_names:
            yield name

        if not page.next_token:
            break
        next_token = page.next_token


def create_stream_client(settings: "Settings") -> StreamClient:
    """Factory function to create a stream client from configuration.

    Args:
        settings: Console settings

    Returns:
        Appropriate StreamClient implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StreamBackend
    from .kinesis import KinesisStreamClient
    from .memory import InMemoryStreamClient

    if settings.backend == StreamBackend.KINESIS:
        return KinesisStreamClient(settings)
    elif settings.backend == StreamBackend.MEMORY:
        client = InMemoryStreamClient(shard_count=settings.memory_shard_count)
        for name in settings.memory_streams:
            client.create_stream(name)
        return client
    else:
        raise ValueError(f"Unsupported stream backend: {settings.backend}")
