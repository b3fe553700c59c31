"""
Kinesis Console - administrative façade over Kinesis Data Streams.

This package exposes a small HTTP API for operators to:
- List and delete streams
- Describe a stream's shard topology
- Publish a single record
- Sample recent records across every shard of a stream

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────────┐
    │  Frontend   │────▶│  FastAPI    │────▶│ StreamAdminHandler  │
    │  (browser)  │     │  /api       │     └──────────┬──────────┘
    └─────────────┘     └─────────────┘                │
                                              ┌────────┴─────────┐
                                              ▼                  ▼
                                   ┌────────────────────┐ ┌─────────────┐
                                   │ SnapshotAggregator │ │ StreamClient│
                                   └─────────┬──────────┘ └──────┬──────┘
                                              │                  │
                                              └────────┬─────────┘
                                                       ▼
                                        ┌─────────────────────────────┐
                                        │ Kinesis (aiobotocore) /     │
                                        │ in-memory backend           │
                                        └─────────────────────────────┘

Invariants:
    - A snapshot either covers every shard or fails as a whole
    - Required inputs are validated before any upstream call
    - Upstream error messages reach the caller unmodified

How to change safely:
    - New backends must implement the StreamClient protocol
    - Keep HTTP field names stable; the frontend depends on them
"""

from ._version import __version__

__all__ = ["__version__"]
