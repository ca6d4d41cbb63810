"""Editing session: the live graph plus the services that act on it."""

from typing import Any, Dict, List, Optional

from ..config import AppConfig, get_config
from ..models.core import Node, Edge, GraphModel, ValidationReport, UndoAction, UndoResult
from ..models.execution import RunOutcome
from .connection_rules import check_connection
from .exceptions import GraphEditError
from .execution_engine import ExecutionEngine
from .logging import get_logger
from .operations_stack import OperationsStack
from .validation_cache import CachedValidator, ValidationCache

logger = get_logger(__name__)


class WorkflowSession:
    """
    Owns the mutable graph of one editing session.

    Every structural edit goes through this object so that node additions
    and deletions are recorded on the operations stack. Edits are rejected
    while the engine is running.
    """

    def __init__(
        self,
        engine: Optional[ExecutionEngine] = None,
        validator: Optional[CachedValidator] = None,
        operations: Optional[OperationsStack] = None,
        config: Optional[AppConfig] = None,
        workflow_id: Optional[str] = None
    ):
        config = config or get_config()
        self.engine = engine or ExecutionEngine(
            status_reset_delay=config.status_reset_delay,
            default_node_timeout=config.default_node_timeout,
            run_history_limit=config.run_history_limit,
        )
        self.validator = validator or CachedValidator(
            cache=ValidationCache(max_size=config.validation_cache_size, ttl=config.validation_cache_ttl)
        )
        self.operations = operations or OperationsStack(max_size=config.operations_stack_limit)
        self.workflow_id = workflow_id
        self.nodes: List[Node] = []
        self.edges: List[Edge] = []

    @property
    def graph(self) -> GraphModel:
        """Deep-copied snapshot of the live graph."""
        return GraphModel.of(self.nodes, self.edges)

    def load(self, graph: GraphModel, workflow_id: Optional[str] = None) -> None:
        """Replace the live graph, e.g. after loading from storage."""
        self._ensure_editable("load")
        snapshot = graph.snapshot()
        self.nodes = snapshot.nodes
        self.edges = snapshot.edges
        self.workflow_id = workflow_id
        self.operations.clear()

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def _require_node(self, node_id: str, operation: str) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise GraphEditError(f"Node '{node_id}' does not exist", node_id=node_id, operation=operation)
        return node

    def _ensure_editable(self, operation: str) -> None:
        if self.engine.is_running:
            raise GraphEditError("The graph cannot be edited while a run is in progress", operation=operation)

    def add_node(self, node: Node) -> Node:
        self._ensure_editable("add_node")
        if self.get_node(node.id) is not None:
            raise GraphEditError(f"Node '{node.id}' already exists", node_id=node.id, operation="add_node")

        node = node.model_copy(deep=True)
        self.nodes.append(node)
        self.operations.record_addition(node, [])
        logger.debug(f"Added node {node.id} ({node.subtype})")
        return node

    def delete_node(self, node_id: str) -> List[Edge]:
        """Remove a node and its incident edges. Returns the removed edges."""
        self._ensure_editable("delete_node")
        node = self._require_node(node_id, "delete_node")

        removed = [edge for edge in self.edges if node_id in (edge.source, edge.target)]
        self.edges = [edge for edge in self.edges if node_id not in (edge.source, edge.target)]
        self.nodes = [existing for existing in self.nodes if existing.id != node_id]
        self.operations.record_deletion(node, removed)
        logger.debug(f"Deleted node {node_id} with {len(removed)} edges")
        return removed

    def connect(self, source_id: str, target_id: str, edge_id: Optional[str] = None) -> Edge:
        self._ensure_editable("connect")
        source = self._require_node(source_id, "connect")
        target = self._require_node(target_id, "connect")

        check = check_connection(source, target, self.edges)
        if not check.is_valid:
            raise GraphEditError(check.reason or "Invalid connection", node_id=source_id, operation="connect")

        edge = Edge(id=edge_id or "", source=source_id, target=target_id)
        self.edges.append(edge)
        return edge

    def disconnect(self, edge_id: str) -> bool:
        self._ensure_editable("disconnect")
        before = len(self.edges)
        self.edges = [edge for edge in self.edges if edge.id != edge_id]
        return len(self.edges) != before

    def update_node_config(self, node_id: str, config: Dict[str, Any], merge: bool = True) -> Node:
        self._ensure_editable("update_node_config")
        node = self._require_node(node_id, "update_node_config")
        new_config = {**node.config, **config} if merge else dict(config)
        updated = node.model_copy(update={"config": new_config}, deep=True)
        self.nodes = [updated if existing.id == node_id else existing for existing in self.nodes]
        return updated

    def undo(self) -> Optional[UndoResult]:
        """Undo the newest node operation. Returns None when there is nothing to undo."""
        self._ensure_editable("undo")
        result = self.operations.undo_last()
        if result is None:
            return None

        if result.reverse_op == UndoAction.ADD_INVERSE:
            node_id = result.node.id
            self.nodes = [node for node in self.nodes if node.id != node_id]
            self.edges = [edge for edge in self.edges if node_id not in (edge.source, edge.target)]
        else:
            self._restore(result.node, result.edges)

        logger.debug(f"Undid {result.operation.type.value} of node {result.node.id}")
        return result

    def recover_deleted(self, node_id: str) -> Node:
        """Re-insert a recently deleted node without popping the operations stack."""
        self._ensure_editable("recover_deleted")
        if self.get_node(node_id) is not None:
            raise GraphEditError(f"Node '{node_id}' is already in the graph", node_id=node_id,
                                 operation="recover_deleted")

        for deleted in self.operations.peek_recent_deletions(self.operations.max_size):
            if deleted.node.id == node_id:
                edges = self._restore(deleted.node, deleted.edges)
                self.operations.record_addition(deleted.node, edges)
                return deleted.node

        raise GraphEditError(f"No recent deletion of node '{node_id}'", node_id=node_id,
                             operation="recover_deleted")

    def _restore(self, node: Node, edges: List[Edge]) -> List[Edge]:
        if self.get_node(node.id) is None:
            self.nodes.append(node.model_copy(deep=True))

        present = {node.id for node in self.nodes}
        existing_ids = {edge.id for edge in self.edges}
        restored = []
        for edge in edges:
            if edge.source in present and edge.target in present and edge.id not in existing_ids:
                self.edges.append(edge.model_copy(deep=True))
                restored.append(edge)
        return restored

    def new_workflow(self) -> None:
        self._ensure_editable("new_workflow")
        self.nodes = []
        self.edges = []
        self.workflow_id = None
        self.operations.clear()
        logger.info("Started new workflow")

    def validate(self) -> ValidationReport:
        return self.validator.validate(self.nodes, self.edges)

    async def run(self) -> RunOutcome:
        return await self.engine.run(self.nodes, self.edges, workflow_id=self.workflow_id)
