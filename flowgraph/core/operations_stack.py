"""
History of structural node edits for single-step undo.

The stack only records intent: the node and the edges incident to it at
the time of the edit. It never touches the live graph; applying the
inverse returned by ``undo_last`` is the caller's job.
"""

import uuid
from typing import Iterable, List, Optional

from ..models.core import (
    Node, Edge, NodeOperation, NodeOperationType, UndoAction, UndoResult, DeletedNode
)
from .logging import get_logger


logger = get_logger(__name__)


class OperationsStack:
    """Bounded LIFO of node add/delete operations. The oldest entry is dropped when full."""

    def __init__(self, max_size: int = 50):
        if max_size < 1:
            raise ValueError("Operations stack size must be at least 1")
        self.max_size = max_size
        self._operations: List[NodeOperation] = []

    def _push(self, op_type: NodeOperationType, node: Node, edges: Iterable[Edge]) -> NodeOperation:
        operation = NodeOperation(
            id=f"op-{uuid.uuid4().hex[:12]}",
            type=op_type,
            node=node.model_copy(deep=True),
            connected_edges=[edge.model_copy(deep=True) for edge in edges],
        )
        self._operations.append(operation)
        if len(self._operations) > self.max_size:
            dropped = self._operations.pop(0)
            logger.debug(f"Operations stack full, dropped {dropped.type.value} of {dropped.node_id}")
        logger.debug(f"Recorded {op_type.value} of node {node.id} with {len(operation.connected_edges)} edges")
        return operation

    def record_addition(self, node: Node, edges: Iterable[Edge] = ()) -> NodeOperation:
        return self._push(NodeOperationType.ADD, node, edges)

    def record_deletion(self, node: Node, edges: Iterable[Edge] = ()) -> NodeOperation:
        return self._push(NodeOperationType.DELETE, node, edges)

    def undo_last(self) -> Optional[UndoResult]:
        """Pop the newest operation and return its inverse, or None when empty."""
        if not self._operations:
            return None

        operation = self._operations.pop()
        reverse = UndoAction.ADD_INVERSE if operation.type == NodeOperationType.ADD else UndoAction.DELETE_INVERSE
        return UndoResult(
            reverse_op=reverse,
            operation=operation,
            node=operation.node.model_copy(deep=True),
            edges=[edge.model_copy(deep=True) for edge in operation.connected_edges],
        )

    def peek_recent_deletions(self, count: int = 5) -> List[DeletedNode]:
        """Newest ``count`` deletions, newest first. Does not modify the stack."""
        return [
            DeletedNode(
                node=operation.node.model_copy(deep=True),
                edges=[edge.model_copy(deep=True) for edge in operation.connected_edges],
                timestamp=operation.timestamp,
            )
            for operation in self._recent(NodeOperationType.DELETE, count)
        ]

    def peek_recent_additions(self, count: int = 5) -> List[Node]:
        return [operation.node.model_copy(deep=True) for operation in self._recent(NodeOperationType.ADD, count)]

    def _recent(self, op_type: NodeOperationType, count: int) -> List[NodeOperation]:
        if count <= 0:
            return []
        return [op for op in reversed(self._operations) if op.type == op_type][:count]

    def last_operation(self) -> Optional[NodeOperation]:
        return self._operations[-1].model_copy(deep=True) if self._operations else None

    def operations_by_type(self, op_type: NodeOperationType) -> List[NodeOperation]:
        return [op.model_copy(deep=True) for op in self._operations if op.type == op_type]

    def clear(self) -> None:
        self._operations.clear()
        logger.debug("Operations stack cleared")

    @property
    def can_undo(self) -> bool:
        return bool(self._operations)

    @property
    def additions_count(self) -> int:
        return sum(1 for op in self._operations if op.type == NodeOperationType.ADD)

    @property
    def deletions_count(self) -> int:
        return sum(1 for op in self._operations if op.type == NodeOperationType.DELETE)

    def __len__(self) -> int:
        return len(self._operations)
