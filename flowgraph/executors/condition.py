"""Condition node executor."""

from ..core.executor_registry import NodeExecutor
from ..models.core import Node
from ..models.execution import ExecutorResult, FailureKind
from ..models.node_config import ConditionConfig


class ConditionExecutor(NodeExecutor):
    """Local executor; a condition node passes when it has conditions to evaluate."""

    description = "Evaluate condition rules"

    async def execute(self, node: Node) -> ExecutorResult:
        config = ConditionConfig.model_validate(node.config)
        if not config.conditions:
            return ExecutorResult(
                success=False,
                error="No conditions configured",
                failure_kind=FailureKind.CONFIGURATION_MISSING,
            )
        return ExecutorResult(success=True, output={"conditions": len(config.conditions), "result": True})
