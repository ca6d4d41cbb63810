"""
Topological scheduling of workflow graphs.

All functions are pure and deterministic for a given node order. None of
them raise on cyclic input: Kahn's algorithm simply stops early and the
returned order is shorter than the node set. Cycle reporting is the
validation engine's job.
"""

from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..models.core import Node, Edge, GraphModel, NodeKind
from .logging import get_logger


logger = get_logger(__name__)


def _unique_ids(graph: GraphModel) -> List[str]:
    return list(graph.node_map().keys())


def _kahn(graph: GraphModel, seed: Optional[Callable[[str], bool]] = None) -> List[str]:
    adjacency = graph.adjacency()
    in_degree = graph.in_degrees()
    node_ids = _unique_ids(graph)

    queue = [
        node_id for node_id in node_ids
        if in_degree[node_id] == 0 and (seed is None or seed(node_id))
    ]
    result: List[str] = []

    while queue:
        current = queue.pop(0)
        result.append(current)
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return result


def topological_order(nodes: Iterable[Node], edges: Iterable[Edge]) -> List[str]:
    """Kahn's algorithm seeded with every in-degree-zero node, in node order."""
    return _kahn(GraphModel.of(nodes, edges))


def layered_levels(nodes: Iterable[Node], edges: Iterable[Edge]) -> List[List[str]]:
    """
    Layer the graph by repeatedly removing in-degree-zero nodes.

    Nodes that are never released (members of a cycle or downstream of one)
    form a final catch-all level, so every node id appears in exactly one
    level.
    """
    graph = GraphModel.of(nodes, edges)
    adjacency = graph.adjacency()
    in_degree = graph.in_degrees()
    node_ids = _unique_ids(graph)

    levels: List[List[str]] = []
    placed = set()
    current = [node_id for node_id in node_ids if in_degree[node_id] == 0]

    while current:
        levels.append(current)
        placed.update(current)
        released = []
        for node_id in current:
            for neighbor in adjacency[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    released.append(neighbor)
        current = released

    remaining = [node_id for node_id in node_ids if node_id not in placed]
    if remaining:
        levels.append(remaining)

    return levels


def execution_order(nodes: Iterable[Node], edges: Iterable[Edge]) -> List[str]:
    """
    Order used by the execution engine.

    Only trigger nodes with no incoming edge seed the walk; a disconnected
    action is never treated as an execution root.
    """
    graph = GraphModel.of(nodes, edges)
    node_map = graph.node_map()
    return _kahn(graph, seed=lambda node_id: node_map[node_id].kind == NodeKind.TRIGGER)


def disconnected_actions(graph: GraphModel) -> List[Node]:
    """Action and AI nodes with no incoming edge."""
    targets = {edge.target for edge in graph.edges}
    return [
        node for node in graph.nodes
        if node.kind in (NodeKind.ACTION, NodeKind.AI) and node.id not in targets
    ]


class Schedule(BaseModel):
    """Exportable scheduling artifacts for one graph."""
    execution_order: List[str] = Field(default_factory=list, description="Trigger-seeded order")
    topological_order: List[str] = Field(default_factory=list, description="Full Kahn order")
    layered_levels: List[List[str]] = Field(default_factory=list, description="DAG structure")
    node_count: int = 0

    @property
    def is_complete(self) -> bool:
        """False when a cycle truncated the topological order."""
        return len(self.topological_order) == self.node_count

    def level_of(self) -> Dict[str, int]:
        return {node_id: index for index, level in enumerate(self.layered_levels) for node_id in level}


def build_schedule(graph: GraphModel) -> Schedule:
    schedule = Schedule(
        execution_order=execution_order(graph.nodes, graph.edges),
        topological_order=topological_order(graph.nodes, graph.edges),
        layered_levels=layered_levels(graph.nodes, graph.edges),
        node_count=len(_unique_ids(graph)),
    )
    if not schedule.is_complete:
        logger.debug(
            f"Partial topological order: {len(schedule.topological_order)} of {schedule.node_count} nodes"
        )
    return schedule
