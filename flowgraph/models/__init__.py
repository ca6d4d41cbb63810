"""Data models for the workflow engine."""

from .core import (
    NodeKind,
    Position,
    Node,
    Edge,
    GraphModel,
    IssueType,
    IssueCategory,
    IssueSeverity,
    ValidationIssue,
    ValidationReport,
    NodeOperationType,
    NodeOperation,
    UndoAction,
    UndoResult,
    DeletedNode,
    GraphSummary,
)
from .execution import (
    NodeStatus,
    RunStatus,
    FailureKind,
    NotificationLevel,
    RefusalReason,
    ExecutorResult,
    NodeResult,
    ExecutionLog,
    ExecutionRun,
    NodeExecutionState,
    RunRefusal,
    RunOutcome,
)

__all__ = [
    "NodeKind",
    "Position",
    "Node",
    "Edge",
    "GraphModel",
    "IssueType",
    "IssueCategory",
    "IssueSeverity",
    "ValidationIssue",
    "ValidationReport",
    "NodeOperationType",
    "NodeOperation",
    "UndoAction",
    "UndoResult",
    "DeletedNode",
    "GraphSummary",
    "NodeStatus",
    "RunStatus",
    "FailureKind",
    "NotificationLevel",
    "RefusalReason",
    "ExecutorResult",
    "NodeResult",
    "ExecutionLog",
    "ExecutionRun",
    "NodeExecutionState",
    "RunRefusal",
    "RunOutcome",
]
