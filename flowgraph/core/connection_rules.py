"""Interactive checks applied before the editor inserts a new edge."""

from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel

from ..models.core import Node, Edge, NodeKind


ALLOWED_TARGETS: Dict[NodeKind, Set[NodeKind]] = {
    NodeKind.TRIGGER: {NodeKind.ACTION, NodeKind.LOGIC, NodeKind.AI},
    NodeKind.ACTION: {NodeKind.ACTION, NodeKind.LOGIC, NodeKind.AI},
    NodeKind.LOGIC: {NodeKind.ACTION, NodeKind.AI},
    NodeKind.AI: {NodeKind.ACTION, NodeKind.AI},
}

MAX_OUTGOING: Dict[NodeKind, int] = {
    NodeKind.TRIGGER: 3,
    NodeKind.ACTION: 2,
    NodeKind.LOGIC: 2,
    NodeKind.AI: 2,
}


class ConnectionCheck(BaseModel):
    """Outcome of checking a proposed connection."""
    is_valid: bool
    reason: Optional[str] = None


def would_create_cycle(source_id: str, target_id: str, edges: Iterable[Edge]) -> bool:
    """True if adding ``source_id -> target_id`` would close a cycle."""
    if source_id == target_id:
        return True

    successors: Dict[str, List[str]] = {}
    for edge in edges:
        successors.setdefault(edge.source, []).append(edge.target)

    # A cycle appears iff source is already reachable from target.
    queue = [target_id]
    visited = {target_id}
    while queue:
        current = queue.pop(0)
        if current == source_id:
            return True
        for neighbor in successors.get(current, []):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return False


def check_connection(source: Node, target: Node, edges: Iterable[Edge]) -> ConnectionCheck:
    """Decide whether ``source -> target`` may be added to a graph with ``edges``."""
    edges = list(edges)

    if source.id == target.id:
        return ConnectionCheck(is_valid=False, reason="Cannot connect node to itself")

    if target.kind not in ALLOWED_TARGETS[source.kind]:
        return ConnectionCheck(
            is_valid=False,
            reason=f"Cannot connect {source.kind.value} to {target.kind.value}",
        )

    if any(edge.source == source.id and edge.target == target.id for edge in edges):
        return ConnectionCheck(is_valid=False, reason="Connection already exists")

    outgoing = sum(1 for edge in edges if edge.source == source.id)
    limit = MAX_OUTGOING[source.kind]
    if outgoing >= limit:
        return ConnectionCheck(
            is_valid=False,
            reason=f"{source.kind.value.capitalize()} nodes can have at most {limit} outgoing connections",
        )

    if would_create_cycle(source.id, target.id, edges):
        return ConnectionCheck(is_valid=False, reason="Connection would create a cycle")

    return ConnectionCheck(is_valid=True)
