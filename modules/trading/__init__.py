from .arbitrator import ArbitrationResult, DecisionArbitrator, select_decision
from .executors import DryRunCommitExecutor, RpcCommitExecutor
from .serializer import ExecutionSerializer
from .stats import SessionStats
from .types import (
    AuctionStateProvider,
    CommitExecutor,
    CommitRequest,
    CommitTicket,
    ExecutionResult,
    TraceSink,
)
from .watcher import SnapshotFormatError, SnapshotRateLimitError, SnapshotWatcher, parse_snapshot

__all__ = [
    "ArbitrationResult",
    "AuctionStateProvider",
    "CommitExecutor",
    "CommitRequest",
    "CommitTicket",
    "DecisionArbitrator",
    "DryRunCommitExecutor",
    "ExecutionResult",
    "ExecutionSerializer",
    "RpcCommitExecutor",
    "SessionStats",
    "SnapshotFormatError",
    "SnapshotRateLimitError",
    "SnapshotWatcher",
    "TraceSink",
    "parse_snapshot",
    "select_decision",
]
