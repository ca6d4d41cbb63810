"""Executor registry mapping node subtypes to node executors."""

import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union

from ..models.core import Node
from ..models.execution import ExecutorResult, FailureKind
from .exceptions import ExecutorRegistryError
from .logging import get_logger

logger = get_logger(__name__)


class NodeExecutor(ABC):
    """Executes one node subtype.

    Implementations should report failures through ``ExecutorResult`` rather
    than raising; the engine still converts any exception into a failed
    node result.
    """

    description: str = ""

    @abstractmethod
    async def execute(self, node: Node) -> ExecutorResult:
        """Run ``node`` once and report the outcome."""

    def is_productive(self, result: ExecutorResult) -> bool:
        """Subtype specific check that a successful result actually did something."""
        return True


def coerce_result(value: Any, started: float) -> ExecutorResult:
    """Normalize what a plain callable returned into an ``ExecutorResult``."""
    if isinstance(value, ExecutorResult):
        result = value
    elif isinstance(value, dict) and "success" in value:
        result = ExecutorResult(**value)
    elif isinstance(value, bool):
        result = ExecutorResult(success=value)
    else:
        raise TypeError(f"Executor returned unsupported result type {type(value).__name__}")

    if not result.duration:
        result = result.model_copy(update={"duration": (time.perf_counter() - started) * 1000})
    return result


class CallableExecutor(NodeExecutor):
    """Adapts a plain sync or async callable ``fn(node)`` to ``NodeExecutor``."""

    def __init__(
        self,
        function: Callable[[Node], Any],
        description: str = "",
        productive: Optional[Callable[[ExecutorResult], bool]] = None
    ):
        self.function = function
        self.description = description or (inspect.getdoc(function) or "").split("\n")[0]
        self._productive = productive

    async def execute(self, node: Node) -> ExecutorResult:
        started = time.perf_counter()
        value = self.function(node)
        if inspect.isawaitable(value):
            value = await value
        return coerce_result(value, started)

    def is_productive(self, result: ExecutorResult) -> bool:
        if self._productive is None:
            return True
        return self._productive(result)


class DefaultExecutor(NodeExecutor):
    """Fallback for subtypes without a registered executor."""

    description = "Succeeds for any configured node"

    async def execute(self, node: Node) -> ExecutorResult:
        if not node.config:
            return ExecutorResult(
                success=False,
                error=f'Node "{node.display_name}" has no configuration',
                failure_kind=FailureKind.CONFIGURATION_MISSING,
            )
        return ExecutorResult(success=True, output={"node_id": node.id, "subtype": node.subtype})


class ExecutorRegistry:
    """Registry of node executors keyed by subtype."""

    def __init__(self, default_executor: Optional[NodeExecutor] = None):
        self._executors: Dict[str, NodeExecutor] = {}
        self.default_executor = default_executor or DefaultExecutor()

    def register(
        self,
        subtype: str,
        executor: Union[NodeExecutor, Callable[[Node], Any]],
        description: str = "",
        replace: bool = False
    ) -> None:
        """Register an executor instance or a plain callable for ``subtype``.

        Raises:
            ExecutorRegistryError: If the subtype is empty, already registered
                (unless ``replace``) or the executor is not callable.
        """
        if not subtype or not subtype.strip():
            raise ExecutorRegistryError("Executor subtype cannot be empty", operation="register")

        subtype = subtype.strip()

        if subtype in self._executors and not replace:
            raise ExecutorRegistryError(
                f"Executor for '{subtype}' is already registered", subtype=subtype, operation="register"
            )

        if not isinstance(executor, NodeExecutor):
            if not callable(executor):
                raise ExecutorRegistryError(
                    f"Executor for '{subtype}' must be a NodeExecutor or callable",
                    subtype=subtype, operation="register"
                )
            executor = CallableExecutor(executor, description=description)
        elif description:
            executor.description = description

        self._executors[subtype] = executor
        logger.info(f"Registered executor for subtype '{subtype}'")

    def unregister(self, subtype: str) -> bool:
        removed = self._executors.pop(subtype.strip(), None) is not None
        if removed:
            logger.info(f"Unregistered executor for subtype '{subtype}'")
        return removed

    def get_executor(self, subtype: str) -> NodeExecutor:
        """Executor for ``subtype``, or the default executor."""
        return self._executors.get(subtype, self.default_executor)

    def has_executor(self, subtype: str) -> bool:
        return subtype in self._executors

    def list_executors(self) -> Dict[str, str]:
        return {subtype: executor.description for subtype, executor in self._executors.items()}

    def subtypes(self) -> List[str]:
        return list(self._executors.keys())
