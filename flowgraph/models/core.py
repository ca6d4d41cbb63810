"""Core Pydantic models for workflow graphs, validation reports and node operations."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class NodeKind(str, Enum):
    """Coarse category of a workflow node."""
    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"
    AI = "ai"


def infer_node_kind(subtype: Optional[str]) -> NodeKind:
    """Map a subtype name such as ``email-trigger`` onto its node kind."""
    name = (subtype or "").lower()
    if "trigger" in name:
        return NodeKind.TRIGGER
    if "action" in name:
        return NodeKind.ACTION
    if "logic" in name or "condition" in name:
        return NodeKind.LOGIC
    if name == "ai" or name.startswith("ai-") or name.endswith("-ai"):
        return NodeKind.AI
    return NodeKind.ACTION


class Position(BaseModel):
    """Canvas position of a node. Carried for round-tripping only."""
    x: float = 0.0
    y: float = 0.0


class Node(BaseModel):
    """Definition of a workflow node."""
    id: str = Field(..., description="Unique identifier for the node")
    kind: NodeKind = Field(..., description="Coarse node category")
    subtype: str = Field(..., description="Subtype selecting validation rules and executor")
    label: str = Field(default="", description="Human readable node name")
    config: Dict[str, Any] = Field(default_factory=dict, description="Subtype specific configuration")
    position: Position = Field(default_factory=Position, description="Canvas position")

    @model_validator(mode='before')
    @classmethod
    def fill_kind_from_subtype(cls, data):
        """Derive the kind from the subtype when the caller omitted it."""
        if isinstance(data, dict) and not data.get("kind"):
            data = dict(data)
            data["kind"] = infer_node_kind(data.get("subtype"))
        return data

    @field_validator('id', 'subtype')
    @classmethod
    def validate_not_empty(cls, value):
        """Ensure identifiers are not blank."""
        if not value or not value.strip():
            raise ValueError("Node ID and subtype cannot be empty")
        return value.strip()

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Edge(BaseModel):
    """Directed connection between two workflow nodes."""
    id: str = Field(default="", description="Edge identifier")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")

    @field_validator('source', 'target')
    @classmethod
    def validate_node_ids(cls, node_id):
        """Ensure endpoint IDs are not blank."""
        if not node_id or not node_id.strip():
            raise ValueError("Edge endpoint cannot be empty")
        return node_id.strip()

    @model_validator(mode='after')
    def default_edge_id(self):
        if not self.id:
            self.id = f"e-{self.source}-{self.target}"
        return self


class GraphModel(BaseModel):
    """Snapshot of a workflow graph.

    The model performs no structural checks of its own: dangling edges,
    duplicate pairs and cycles are all representable so that the validator
    can report them as issues instead of failing at construction time.
    """
    nodes: List[Node] = Field(default_factory=list, description="Nodes in the graph")
    edges: List[Edge] = Field(default_factory=list, description="Edges connecting nodes")

    @classmethod
    def of(cls, nodes: Iterable[Node], edges: Iterable[Edge]) -> 'GraphModel':
        """Build a deep-copied snapshot from live node and edge sequences."""
        return cls(
            nodes=[node.model_copy(deep=True) for node in nodes],
            edges=[edge.model_copy(deep=True) for edge in edges],
        )

    def snapshot(self) -> 'GraphModel':
        return self.model_copy(deep=True)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def node_map(self) -> Dict[str, Node]:
        """Map node IDs to nodes. The first occurrence wins on duplicate IDs."""
        mapping: Dict[str, Node] = {}
        for node in self.nodes:
            mapping.setdefault(node.id, node)
        return mapping

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [node for node in self.nodes if node.kind == kind]

    def outgoing(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def incident_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if node_id in (edge.source, edge.target)]

    def adjacency(self) -> Dict[str, List[str]]:
        """Successor lists for every node, in edge order. Dangling edges are skipped."""
        known = set(self.node_ids())
        graph: Dict[str, List[str]] = {node_id: [] for node_id in self.node_ids()}
        for edge in self.edges:
            if edge.source in known and edge.target in known:
                graph[edge.source].append(edge.target)
        return graph

    def in_degrees(self) -> Dict[str, int]:
        """Incoming edge counts for every node. Dangling edges are skipped."""
        known = set(self.node_ids())
        degrees = {node_id: 0 for node_id in self.node_ids()}
        for edge in self.edges:
            if edge.source in known and edge.target in known:
                degrees[edge.target] += 1
        return degrees


class IssueType(str, Enum):
    """Validation issue type."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(str, Enum):
    """Area of the graph a validation issue concerns."""
    STRUCTURE = "structure"
    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    LOGIC = "logic"


class IssueSeverity(str, Enum):
    """Severity of a validation issue; drives the quality score."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ValidationIssue(BaseModel):
    """A single finding produced by the validation engine."""
    id: str = Field(..., description="Stable issue identifier")
    type: IssueType
    category: IssueCategory
    severity: IssueSeverity
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    suggestion: Optional[str] = None


class ValidationReport(BaseModel):
    """Scored result of validating a graph."""
    is_valid: bool = Field(..., description="True iff no error-typed issue was found")
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    info: List[ValidationIssue] = Field(default_factory=list)
    score: int = Field(100, ge=0, le=100, description="Informational quality score")

    @property
    def issues(self) -> List[ValidationIssue]:
        return self.errors + self.warnings + self.info

    def issues_for_node(self, node_id: str) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.node_id == node_id]

    def has_critical_error(self) -> bool:
        return any(issue.severity == IssueSeverity.CRITICAL for issue in self.errors)


class NodeOperationType(str, Enum):
    """Structural edits tracked by the operations stack."""
    ADD = "add"
    DELETE = "delete"


class UndoAction(str, Enum):
    """Inverse intent returned when an operation is undone."""
    ADD_INVERSE = "add-inverse"        # remove the node that was added
    DELETE_INVERSE = "delete-inverse"  # restore the node that was deleted


class NodeOperation(BaseModel):
    """A recorded structural edit: the node plus its incident edges at that moment."""
    id: str
    type: NodeOperationType
    node: Node
    connected_edges: List[Edge] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def node_id(self) -> str:
        return self.node.id


class UndoResult(BaseModel):
    """What the caller has to apply to the live graph to reverse an operation."""
    reverse_op: UndoAction
    operation: NodeOperation
    node: Node
    edges: List[Edge] = Field(default_factory=list)

    @property
    def should_restore(self) -> bool:
        return self.reverse_op == UndoAction.DELETE_INVERSE


class DeletedNode(BaseModel):
    """Entry of the recent-deletions view."""
    node: Node
    edges: List[Edge] = Field(default_factory=list)
    timestamp: datetime


class GraphSummary(BaseModel):
    """Summary information about a stored workflow."""
    id: str = Field(..., description="Workflow ID")
    name: str = Field(..., description="Workflow name")
    description: str = Field("", description="Workflow description")
    created_at: datetime = Field(..., description="Creation timestamp")
    node_count: int = Field(..., description="Number of nodes in the graph")
    is_valid: bool = Field(False, description="Validity at save time")
    quality_score: int = Field(0, description="Validation score at save time")
