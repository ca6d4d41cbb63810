"""Interfaces of the third-party services the built-in executors drive.

HTTP implementations are provided by the host application.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class MailboxClient(ABC):
    """Read access to a mailbox."""

    @abstractmethod
    async def search(
        self,
        sender: Optional[str] = None,
        subject: Optional[str] = None,
        keywords: Optional[List[str]] = None,
        max_results: int = 10
    ) -> List[Dict[str, Any]]:
        """Return messages matching every given filter."""


class BoardClient(ABC):
    """Kanban board service (e.g. Trello)."""

    @abstractmethod
    async def create_card(
        self,
        board_id: str,
        list_id: str,
        title: str,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a card and return the service representation of it."""


class TaskClient(ABC):
    """Task tracking service (e.g. Asana)."""

    @abstractmethod
    async def create_task(
        self,
        name: str,
        notes: Optional[str] = None,
        project_id: Optional[str] = None,
        workspace_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a task and return the service representation of it."""
