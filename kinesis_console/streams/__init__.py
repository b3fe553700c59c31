"""
Stream service abstraction for Kinesis Console.

This module provides a pluggable stream client interface supporting:
- AWS Kinesis Data Streams (production, or LocalStack via endpoint_url)
- In-memory (for testing and local development)

Invariants:
    - Clients raise UpstreamError for every upstream failure
    - Clients never retry on their own behalf

How to change safely:
    - New backends must implement the StreamClient protocol
    - Register them in create_stream_client()
"""

from .base import (
    PutRecordResult,
    RecordBatch,
    RecordFetcher,
    RecordPublisher,
    ShardCursorOpener,
    ShardInfo,
    ShardIteratorType,
    StreamClient,
    StreamDescription,
    StreamDirectory,
    StreamPage,
    StreamRecord,
    create_stream_client,
    iter_stream_names,
)
from .kinesis import KinesisStreamClient
from .memory import InMemoryStreamClient

__all__ = [
    # Protocols and types
    "StreamClient",
    "StreamDirectory",
    "ShardCursorOpener",
    "RecordFetcher",
    "RecordPublisher",
    "ShardInfo",
    "ShardIteratorType",
    "StreamDescription",
    "StreamRecord",
    "RecordBatch",
    "StreamPage",
    "PutRecordResult",
    # Helpers
    "create_stream_client",
    "iter_stream_names",
    # Implementations
    "KinesisStreamClient",
    "InMemoryStreamClient",
]
