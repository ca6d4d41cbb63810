"""Trello card executor."""

import time

from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import Node
from ..models.execution import ExecutorResult, FailureKind
from ..models.node_config import TrelloActionConfig
from .clients import BoardClient

logger = get_logger(__name__)

DEFAULT_CARD_TITLE = "New card from workflow"


class TrelloCardExecutor(NodeExecutor):
    """Creates one card on the configured board and list."""

    description = "Create a Trello card"

    def __init__(self, client: BoardClient):
        self.client = client

    async def execute(self, node: Node) -> ExecutorResult:
        started = time.perf_counter()
        config = TrelloActionConfig.model_validate(node.config)

        if not config.board_id or not config.list_id:
            return ExecutorResult(
                success=False,
                error="Board and list must be selected",
                failure_kind=FailureKind.CONFIGURATION_MISSING,
            )

        template = config.card_template
        title = (template.title if template else None) or DEFAULT_CARD_TITLE
        description = template.description if template else None

        try:
            card = await self.client.create_card(
                board_id=config.board_id,
                list_id=config.list_id,
                title=title,
                description=description,
            )
        except Exception as e:
            logger.error(f"Card creation failed for node {node.id}: {e}")
            return ExecutorResult(
                success=False,
                duration=(time.perf_counter() - started) * 1000,
                error=f"Failed to create Trello card: {e}",
                failure_kind=FailureKind.EXECUTOR_FAILURE,
            )

        logger.info(f"Node {node.id} created card '{title}'")
        return ExecutorResult(
            success=True,
            duration=(time.perf_counter() - started) * 1000,
            output={"card": card},
        )
