"""Asana task executor."""

import time

from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import Node
from ..models.execution import ExecutorResult, FailureKind
from ..models.node_config import AsanaActionConfig
from .clients import TaskClient

logger = get_logger(__name__)


class AsanaTaskExecutor(NodeExecutor):
    description = "Create an Asana task"

    def __init__(self, client: TaskClient):
        self.client = client

    async def execute(self, node: Node) -> ExecutorResult:
        started = time.perf_counter()
        config = AsanaActionConfig.model_validate(node.config)

        if not config.task_name:
            return ExecutorResult(
                success=False,
                error="Task name template is required",
                failure_kind=FailureKind.CONFIGURATION_MISSING,
            )

        try:
            task = await self.client.create_task(
                name=config.task_name,
                notes=config.notes,
                project_id=config.project_id,
                workspace_id=config.workspace_id,
            )
        except Exception as e:
            logger.error(f"Task creation failed for node {node.id}: {e}")
            return ExecutorResult(
                success=False,
                duration=(time.perf_counter() - started) * 1000,
                error=f"Failed to create Asana task: {e}",
                failure_kind=FailureKind.EXECUTOR_FAILURE,
            )

        logger.info(f"Node {node.id} created task '{config.task_name}'")
        return ExecutorResult(
            success=True,
            duration=(time.perf_counter() - started) * 1000,
            output={"task": task},
        )
