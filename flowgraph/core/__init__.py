"""Core workflow engine components."""

from .exceptions import (
    FlowGraphError,
    GraphValidationError,
    GraphEditError,
    NodeExecutionError,
    ExecutorRegistryError,
    ExecutionEngineError,
    StorageError,
    TransientError,
    ConfigurationError,
    APIError,
)
from .logging import setup_logging, get_logger
from .graph_validator import ValidationEngine, validate_graph, get_validation_summary
from .scheduler import topological_order, layered_levels, execution_order, build_schedule
from .executor_registry import ExecutorRegistry, NodeExecutor
from .execution_engine import ExecutionEngine
from .operations_stack import OperationsStack
from .session import WorkflowSession
from .graph_manager import GraphManager

__all__ = [
    "FlowGraphError",
    "GraphValidationError",
    "GraphEditError",
    "NodeExecutionError",
    "ExecutorRegistryError",
    "ExecutionEngineError",
    "StorageError",
    "TransientError",
    "ConfigurationError",
    "APIError",
    "setup_logging",
    "get_logger",
    "ValidationEngine",
    "validate_graph",
    "get_validation_summary",
    "topological_order",
    "layered_levels",
    "execution_order",
    "build_schedule",
    "ExecutorRegistry",
    "NodeExecutor",
    "ExecutionEngine",
    "OperationsStack",
    "WorkflowSession",
    "GraphManager",
]
