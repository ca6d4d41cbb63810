"""Capability checks for nodes that need third-party credentials.

The OAuth flows that actually obtain credentials live outside the engine;
the engine only asks whether a capability is currently held.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

from ..models.core import Node
from .logging import get_logger


logger = get_logger(__name__)

DEFAULT_REQUIREMENTS: Dict[str, str] = {
    "email-trigger": "gmail",
    "trello-action": "trello",
    "asana-action": "asana",
}


class CapabilityProvider(ABC):
    """Answers whether an external authorization is currently held."""

    @abstractmethod
    async def has_capability(self, tag: str) -> bool:
        ...


class InMemoryCapabilityProvider(CapabilityProvider):
    """Capability provider backed by a set of granted tags."""

    def __init__(self, capabilities: Optional[Iterable[str]] = None):
        self._capabilities: Set[str] = set(capabilities or [])

    async def has_capability(self, tag: str) -> bool:
        return tag in self._capabilities

    def grant(self, tag: str) -> None:
        self._capabilities.add(tag)

    def revoke(self, tag: str) -> None:
        self._capabilities.discard(tag)

    @property
    def capabilities(self) -> Set[str]:
        return set(self._capabilities)


class AuthorizationPolicy:
    """Maps node subtypes to the capability tag they require."""

    def __init__(self, requirements: Optional[Dict[str, str]] = None):
        self.requirements = dict(DEFAULT_REQUIREMENTS if requirements is None else requirements)

    def requires_authorization(self, node: Node) -> Optional[str]:
        """Capability tag ``node`` needs, or None."""
        return self.requirements.get(node.subtype)

    async def missing_capabilities(self, nodes: Iterable[Node], provider: CapabilityProvider) -> List[str]:
        """Tags required by ``nodes`` that ``provider`` does not hold, in first-seen order."""
        missing: List[str] = []
        checked: Set[str] = set()
        for node in nodes:
            tag = self.requires_authorization(node)
            if tag is None or tag in checked:
                continue
            checked.add(tag)
            if not await provider.has_capability(tag):
                missing.append(tag)

        if missing:
            logger.info(f"Missing authorizations: {', '.join(missing)}")
        return missing
