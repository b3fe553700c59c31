"""
API routes for Kinesis Console.

Provides the REST endpoints used by the console frontend. Every route is a
thin wrapper around StreamAdminHandler; validation of required inputs and
all upstream calls happen there.
"""

import base64
import logging
from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..handler import StreamAdminHandler
from ..snapshot import SnapshotResult
from ..streams.base import StreamRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Kinesis Console"])


# --- Request/Response Models ---


class ApiModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class DeleteStreamRequest(ApiModel):
    """Request to delete a stream."""

    stream_name: str = Field("", alias="streamName", description="Stream to delete")


class PublishMessageRequest(ApiModel):
    """Request to publish one record."""

    stream_arn: str = Field("", alias="streamArn", description="Target stream ARN")
    partition_key: str | None = Field(
        None, alias="partitionKey", description="Partition key, generated when empty"
    )
    data: str = Field("", description="Record payload")


class ListStreamsResponse(ApiModel):
    """All stream names."""

    streams: list[str]
    count: int


class DeleteStreamResponse(ApiModel):
    """Deletion acknowledgement."""

    status: str
    stream: str


class DescribeStreamResponse(ApiModel):
    """Stream metadata."""

    stream_name: str = Field(alias="streamName")
    stream_arn: str = Field(alias="streamArn")
    status: str
    retention_hours: int = Field(alias="retentionHours")
    shard_count: int = Field(alias="shardCount")
    encryption_type: str | None = Field(None, alias="encryptionType")


class RecordResponse(ApiModel):
    """One sampled record."""

    shard_id: str = Field(alias="shardId")
    partition_key: str = Field(alias="partitionKey")
    sequence_number: str = Field(alias="sequenceNumber")
    approximate_arrival_timestamp: datetime | None = Field(
        None, alias="approximateArrivalTimestamp"
    )
    data_base64: str = Field(alias="dataBase64")


class LatestMessagesResponse(ApiModel):
    """Snapshot of records across all shards."""

    records: list[RecordResponse]
    count: int
    shards: int


class PublishMessageResponse(ApiModel):
    """Where the published record landed."""

    shard_id: str = Field(alias="shardId")
    sequence_number: str = Field(alias="sequenceNumber")
    partition_key: str = Field(alias="partitionKey")


# --- Dependencies ---


def get_handler(request: Request) -> StreamAdminHandler:
    """Get the stream handler from app state."""
    return request.app.state.handler


# --- Stream Routes ---


@router.get("/list", response_model=ListStreamsResponse)
async def list_streams(handler: StreamAdminHandler = Depends(get_handler)):
    """
    List all stream names.

    Pagination is followed until the last page before responding.
    """
    streams = await handler.list_streams()
    return ListStreamsResponse(streams=streams, count=len(streams))


@router.delete("/stream", response_model=DeleteStreamResponse)
async def delete_stream(
    request: DeleteStreamRequest | None = Body(None),
    handler: StreamAdminHandler = Depends(get_handler),
):
    """Delete a stream."""
    stream_name = request.stream_name if request else ""
    await handler.delete_stream(stream_name)
    return DeleteStreamResponse(status="deleted", stream=stream_name)


@router.get("/stream/describe", response_model=DescribeStreamResponse)
async def describe_stream(
    stream_name: str = Query("", alias="streamName", description="Stream to describe"),
    handler: StreamAdminHandler = Depends(get_handler),
):
    """Describe a stream's status, retention, encryption and shard count."""
    desc = await handler.describe_stream(stream_name)
    return DescribeStreamResponse(
        stream_name=desc.stream_name,
        stream_arn=desc.stream_arn,
        status=desc.status,
        retention_hours=desc.retention_hours,
        shard_count=desc.shard_count,
        encryption_type=desc.encryption_type,
    )


@router.get("/stream/messages", response_model=LatestMessagesResponse)
async def latest_messages(
    stream_name: str = Query("", alias="streamName", description="Stream to sample"),
    limit: int | None = Query(None, description="Total record budget (default 50)"),
    handler: StreamAdminHandler = Depends(get_handler),
):
    """
    Sample records from every shard of a stream.

    The budget is split evenly across shards with at least one record per
    shard. Reads start at the oldest retained record of each shard. If any
    shard fails, the whole request fails.
    """
    result = await handler.latest_messages(stream_name, limit)
    return _snapshot_to_response(result)


@router.post("/stream/message", response_model=PublishMessageResponse)
async def publish_message(
    request: PublishMessageRequest | None = Body(None),
    handler: StreamAdminHandler = Depends(get_handler),
):
    """Publish a single record."""
    request = request or PublishMessageRequest()
    result = await handler.publish_message(
        stream_arn=request.stream_arn,
        partition_key=request.partition_key,
        data=request.data,
    )
    return PublishMessageResponse(
        shard_id=result.shard_id,
        sequence_number=result.sequence_number,
        partition_key=result.partition_key,
    )


# --- Helpers ---


def _record_to_response(record: StreamRecord) -> RecordResponse:
    return RecordResponse(
        shard_id=record.shard_id,
        partition_key=record.partition_key,
        sequence_number=record.sequence_number,
        approximate_arrival_timestamp=record.approximate_arrival_timestamp,
        data_base64=base64.b64encode(record.data).decode("ascii"),
    )


def _snapshot_to_response(result: SnapshotResult) -> LatestMessagesResponse:
    return LatestMessagesResponse(
        records=[_record_to_response(r) for r in result.records],
        count=result.count,
        shards=result.shard_count,
    )
