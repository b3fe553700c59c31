"""
Multi-shard snapshot reads for Kinesis Console.
"""

from .aggregator import (
    ShardRead,
    ShardReadState,
    SnapshotAggregator,
    SnapshotResult,
    compute_per_shard_quota,
)

__all__ = [
    "SnapshotAggregator",
    "SnapshotResult",
    "ShardRead",
    "ShardReadState",
    "compute_per_shard_quota",
]
