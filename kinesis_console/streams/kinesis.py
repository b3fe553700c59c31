"""
AWS Kinesis stream client implementation.

This module provides the Kinesis Data Streams backend for the console.
It uses aiobotocore for async operations.

Invariants:
    - One client context is opened on connect() and reused for all requests
    - Every botocore failure is raised as UpstreamError with its message intact
    - No call is retried here; botocore's own retry policy is left as configured
    - describe_stream() returns every shard, following HasMoreShards

How to change safely:
    - Test with LocalStack before deploying to AWS
    - Keep InMemoryStreamClient behavior aligned with what this returns
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
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


class KinesisStreamClient:
    """Kinesis Data Streams implementation of the StreamClient protocol.

    Uses aiobotocore for async operations with AWS Kinesis.

    Attributes:
        settings: Console settings (region, endpoint, timeouts)

    Example:
        >>> client = KinesisStreamClient(Settings(region="eu-west-1"))
        >>> await client.connect()
        >>> page = await client.list_streams_page()
        >>> await client.close()
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._session = None
        self._client_ctx = None
        self._client: Any = None

    @property
    def is_connected(self) -> bool:
        """Whether connected to Kinesis."""
        return self._client is not None

    async def connect(self) -> None:
        """Create the Kinesis client.

        Raises:
            StreamConnectionError: If the client cannot be created
        """
        if self._client is not None:
            return

        client_kwargs: dict[str, Any] = {
            "region_name": self.settings.region,
            "config": AioConfig(
                connect_timeout=self.settings.connect_timeout,
                read_timeout=self.settings.read_timeout,
            ),
        }
        if self.settings.endpoint_url:
            client_kwargs["endpoint_url"] = self.settings.endpoint_url

        try:
            self._session = get_session()
            self._client_ctx = self._session.create_client("kinesis", **client_kwargs)
            self._client = await self._client_ctx.__aenter__()
        except BotoCoreError as e:
            raise StreamConnectionError(f"Failed to create Kinesis client: {e}") from e

        logger.info(
            "Connected to Kinesis",
            extra={
                "region": self.settings.region,
                "endpoint": self.settings.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close the Kinesis client."""
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing Kinesis client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
        logger.info("Kinesis connection closed")

    async def list_streams_page(self, next_token: str | None = None) -> StreamPage:
        """Fetch one page of stream names."""
        client = self._require_client()
        kwargs = {"NextToken": next_token} if next_token else {}

        with self._translate_errors("ListStreams"):
            response = await client.list_streams(**kwargs)

        return StreamPage(
            stream_names=tuple(response.get("StreamNames", [])),
            next_token=response.get("NextToken"),
        )

    async def describe_stream(self, stream_name: str) -> StreamDescription:
        """Describe a stream, collecting every page of shards."""
        client = self._require_client()
        shards: list[ShardInfo] = []
        kwargs: dict[str, Any] = {"StreamName": stream_name}

        while True:
            with self._translate_errors("DescribeStream"):
                response = await client.describe_stream(**kwargs)

            desc = response["StreamDescription"]
            page = [self._parse_shard(s) for s in desc.get("Shards", [])]
            shards.extend(page)

            if not desc.get("HasMoreShards") or not page:
                break
            kwargs["ExclusiveStartShardId"] = page[-1].shard_id

        return StreamDescription(
            stream_name=desc["StreamName"],
            stream_arn=desc.get("StreamARN", ""),
            status=desc.get("StreamStatus", ""),
            retention_hours=desc.get("RetentionPeriodHours", 0),
            encryption_type=desc.get("EncryptionType"),
            shards=tuple(shards),
        )

    async def delete_stream(self, stream_name: str) -> None:
        """Delete a stream."""
        client = self._require_client()

        with self._translate_errors("DeleteStream"):
            await client.delete_stream(StreamName=stream_name)

        logger.info("Kinesis stream deleted", extra={"stream": stream_name})

    async def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: ShardIteratorType,
    ) -> str | None:
        """Open a shard iterator."""
        client = self._require_client()

        with self._translate_errors("GetShardIterator", shard_id=shard_id):
            response = await client.get_shard_iterator(
                StreamName=stream_name,
                ShardId=shard_id,
                ShardIteratorType=ShardIteratorType(iterator_type).value,
            )

        return response.get("ShardIterator")

    async def get_records(self, iterator: str, limit: int | None = None) -> RecordBatch:
        """Fetch one batch of records from an iterator."""
        client = self._require_client()
        kwargs: dict[str, Any] = {"ShardIterator": iterator}
        if limit is not None:
            kwargs["Limit"] = max(1, min(limit, MAX_RECORDS_PER_GET))

        with self._translate_errors("GetRecords"):
            response = await client.get_records(**kwargs)

        records = [
            StreamRecord(
                shard_id="",
                partition_key=r["PartitionKey"],
                sequence_number=r["SequenceNumber"],
                approximate_arrival_timestamp=r.get("ApproximateArrivalTimestamp"),
                data=r["Data"],
            )
            for r in response.get("Records", [])
        ]

        return RecordBatch(
            records=records,
            next_iterator=response.get("NextShardIterator"),
            millis_behind_latest=response.get("MillisBehindLatest"),
        )

    async def put_record(
        self,
        stream_arn: str,
        partition_key: str,
        data: bytes,
    ) -> PutRecordResult:
        """Put one record on the stream identified by ARN."""
        client = self._require_client()

        with self._translate_errors("PutRecord"):
            response = await client.put_record(
                StreamARN=stream_arn,
                PartitionKey=partition_key,
                Data=data,
            )

        logger.debug(
            "Record published to Kinesis",
            extra={
                "stream_arn": stream_arn,
                "key": partition_key,
                "shard": response["ShardId"],
                "sequence": response["SequenceNumber"],
                "request_id": response.get("ResponseMetadata", {}).get("RequestId"),
            },
        )

        return PutRecordResult(
            shard_id=response["ShardId"],
            sequence_number=response["SequenceNumber"],
            partition_key=partition_key,
        )

    def _require_client(self) -> Any:
        if self._client is None:
            raise StreamConnectionError("Not connected to Kinesis")
        return self._client

    @contextmanager
    def _translate_errors(self, operation: str, shard_id: str | None = None) -> Iterator[None]:
        """Re-raise botocore failures as UpstreamError, message unchanged."""
        try:
            yield
        except ClientError as e:
            raise UpstreamError(str(e), shard_id=shard_id, operation=operation) from e
        except BotoCoreError as e:
            raise UpstreamError(str(e), shard_id=shard_id, operation=operation) from e

    @staticmethod
    def _parse_shard(shard: dict[str, Any]) -> ShardInfo:
        hash_range = shard.get("HashKeyRange", {})
        seq_range = shard.get("SequenceNumberRange", {})
        return ShardInfo(
            shard_id=shard["ShardId"],
            parent_shard_id=shard.get("ParentShardId"),
            starting_hash_key=hash_range.get("StartingHashKey"),
            ending_hash_key=hash_range.get("EndingHashKey"),
            starting_sequence_number=seq_range.get("StartingSequenceNumber"),
        )
