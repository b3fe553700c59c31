"""
Stream administration handler for Kinesis Console.

StreamAdminHandler is the single object behind the HTTP routes. It is
created once at startup with its collaborators and holds no per-request
state, so one instance serves every request.

Invariants:
    - Required inputs are checked before any upstream call
    - Upstream errors propagate unchanged; nothing is retried
    - list_streams() returns only after every page has been read
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from .config import DEFAULT_SNAPSHOT_LIMIT
from .errors import InvalidArgumentError
from .snapshot import SnapshotAggregator, SnapshotResult
from .streams.base import (
    PutRecordResult,
    StreamClient,
    StreamDescription,
    iter_stream_names,
)

logger = logging.getLogger(__name__)


class StreamAdminHandler:
    """List, delete, describe, sample and publish to streams.

    Attributes:
        client: Stream client used for every upstream call
        aggregator: Snapshot aggregator wired to the same client
    """

    def __init__(
        self,
        client: StreamClient,
        default_snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> None:
        self.client = client
        self.aggregator = SnapshotAggregator(
            directory=client,
            cursors=client,
            fetcher=client,
            default_limit=default_snapshot_limit,
        )

    async def list_streams(self) -> list[str]:
        """Return all stream names, iterating through pagination until exhausted."""
        return [name async for name in iter_stream_names(self.client)]

    async def delete_stream(self, stream_name: str) -> None:
        """Delete the given stream."""
        if not stream_name:
            raise InvalidArgumentError("streamName required", field_name="streamName")

        await self.client.delete_stream(stream_name)
        logger.info("Stream deleted", extra={"stream": stream_name})

    async def describe_stream(self, stream_name: str) -> StreamDescription:
        """Return metadata for a specific stream."""
        if not stream_name:
            raise InvalidArgumentError("streamName required", field_name="streamName")

        return await self.client.describe_stream(stream_name)

    async def latest_messages(
        self,
        stream_name: str,
        limit: Optional[int] = None,
    ) -> SnapshotResult:
        """Sample records from each shard of a stream.

        If any shard operation fails, the whole request fails.
        """
        return await self.aggregator.snapshot(stream_name, limit)

    async def publish_message(
        self,
        stream_arn: str,
        partition_key: Optional[str],
        data: str,
    ) -> PutRecordResult:
        """Put a single record onto the stream.

        An empty partition key is replaced by a random UUID.
        """
        if not stream_arn or not data:
            raise InvalidArgumentError(
                "streamArn and data are required",
                field_name="streamArn" if not stream_arn else "data",
            )

        if not partition_key:
            partition_key = str(uuid.uuid4())

        return await self.client.put_record(stream_arn, partition_key, data.encode("utf-8"))
