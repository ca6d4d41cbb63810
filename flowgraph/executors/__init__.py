"""Built-in node executors."""

from typing import Optional

from ..core.executor_registry import ExecutorRegistry
from .asana import AsanaTaskExecutor
from .clients import MailboxClient, BoardClient, TaskClient
from .condition import ConditionExecutor
from .email import EmailTriggerExecutor
from .trello import TrelloCardExecutor


def register_builtin_executors(
    registry: ExecutorRegistry,
    mailbox: Optional[MailboxClient] = None,
    boards: Optional[BoardClient] = None,
    tasks: Optional[TaskClient] = None
) -> ExecutorRegistry:
    """Register the condition executor and every service executor with a client."""
    registry.register("condition", ConditionExecutor(), replace=True)
    if mailbox is not None:
        registry.register("email-trigger", EmailTriggerExecutor(mailbox), replace=True)
    if boards is not None:
        registry.register("trello-action", TrelloCardExecutor(boards), replace=True)
    if tasks is not None:
        registry.register("asana-action", AsanaTaskExecutor(tasks), replace=True)
    return registry


__all__ = [
    "MailboxClient",
    "BoardClient",
    "TaskClient",
    "EmailTriggerExecutor",
    "TrelloCardExecutor",
    "AsanaTaskExecutor",
    "ConditionExecutor",
    "register_builtin_executors",
]
