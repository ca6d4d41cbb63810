"""Email trigger executor."""

import time

from ..core.executor_registry import NodeExecutor
from ..core.logging import get_logger
from ..models.core import Node
from ..models.execution import ExecutorResult, FailureKind
from ..models.node_config import EmailFilters, EmailTriggerConfig
from .clients import MailboxClient

logger = get_logger(__name__)


class EmailTriggerExecutor(NodeExecutor):
    """Fires when the mailbox holds at least one message matching the node filters."""

    description = "Search the mailbox for messages matching the trigger filters"

    def __init__(self, client: MailboxClient):
        self.client = client

    async def execute(self, node: Node) -> ExecutorResult:
        started = time.perf_counter()
        config = EmailTriggerConfig.model_validate(node.config)
        filters = config.email_filters or EmailFilters()

        try:
            emails = await self.client.search(
                sender=filters.sender,
                subject=filters.subject,
                keywords=filters.keywords,
                max_results=config.max_results,
            )
        except Exception as e:
            logger.error(f"Mailbox search failed for node {node.id}: {e}")
            return ExecutorResult(
                success=False,
                duration=(time.perf_counter() - started) * 1000,
                error=f"Mailbox search failed: {e}",
                failure_kind=FailureKind.EXECUTOR_FAILURE,
            )

        logger.debug(f"Node {node.id} found {len(emails)} matching emails")
        return ExecutorResult(
            success=True,
            duration=(time.perf_counter() - started) * 1000,
            output={"emails": emails, "count": len(emails)},
        )

    def is_productive(self, result: ExecutorResult) -> bool:
        return bool(result.output and result.output.get("count"))

    def describe_unproductive(self, result: ExecutorResult) -> str:
        return "No emails found matching the trigger filters"
