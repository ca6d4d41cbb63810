"""Pydantic models for workflow execution runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class NodeStatus(str, Enum):
    """Per-node execution status shown on the canvas."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class RunStatus(str, Enum):
    """Enumeration of workflow run statuses."""
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class FailureKind(str, Enum):
    """Why a node failed. Every kind is terminal for the run."""
    CONFIGURATION_MISSING = "configuration_missing"
    AUTHORIZATION_MISSING = "authorization_missing"
    EXECUTOR_FAILURE = "executor_failure"
    UNEXPECTED_EXCEPTION = "unexpected_exception"


class NotificationLevel(str, Enum):
    """Levels accepted by the notification interface and the run log."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class RefusalReason(str, Enum):
    """Reasons a run is refused before any node executes."""
    EMPTY_GRAPH = "empty_graph"
    DISCONNECTED_ACTIONS = "disconnected_actions"
    AUTHORIZATION_REQUIRED = "authorization_required"
    RUN_IN_PROGRESS = "run_in_progress"


class ExecutorResult(BaseModel):
    """Value returned by a node executor."""
    success: bool
    duration: float = Field(0.0, description="Execution time in milliseconds")
    output: Optional[Any] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = Field(
        None, description="Set by executors that can classify their own failure"
    )


class NodeResult(BaseModel):
    """Outcome of one node within a run."""
    model_config = ConfigDict(frozen=True)

    node_id: str
    status: NodeStatus
    duration: float = Field(0.0, description="Execution time in milliseconds")
    output: Optional[Any] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None


class ExecutionLog(BaseModel):
    """Log line attached to a run for the debug panel."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    level: NotificationLevel
    message: str
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    details: Optional[str] = None
    duration: Optional[float] = None


class ExecutionRun(BaseModel):
    """Record of one walk of the execution order.

    Instances are immutable; the engine publishes a new snapshot on every
    transition. Once ``status`` leaves ``running`` the record is sealed.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    execution_order: List[str] = Field(default_factory=list)
    node_results: List[NodeResult] = Field(default_factory=list)
    completed_count: int = 0
    error_count: int = 0
    logs: List[ExecutionLog] = Field(default_factory=list)

    @property
    def is_sealed(self) -> bool:
        return self.status != RunStatus.RUNNING

    def result_for(self, node_id: str) -> Optional[NodeResult]:
        for result in self.node_results:
            if result.node_id == node_id:
                return result
        return None


class NodeExecutionState(BaseModel):
    """Live status of a node during and shortly after a run."""
    status: NodeStatus = NodeStatus.IDLE
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error: Optional[str] = None


class RunRefusal(BaseModel):
    """Why a run request was turned down before execution."""
    reason: RefusalReason
    message: str
    node_ids: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)


class RunOutcome(BaseModel):
    """Result of asking the engine to run a graph."""
    accepted: bool
    refusal: Optional[RunRefusal] = None
    run: Optional[ExecutionRun] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
