"""Workflow import/export as ``.flow.json`` documents."""

import json
import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models.core import Node, Edge, GraphModel, ValidationReport
from .logging import get_logger


logger = get_logger(__name__)

EXPORT_VERSION = "1.0.0"
FILE_SUFFIX = ".flow.json"


class WorkflowMetadata(BaseModel):
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    exported_at: datetime = Field(default_factory=datetime.utcnow)
    author: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        if not name or not name.strip():
            raise ValueError("Workflow name cannot be empty")
        return name.strip()


class ExportedState(BaseModel):
    """Editor state carried along with an export. Always exported as a draft."""
    id: Optional[str] = None
    status: str = "draft"
    is_valid: Optional[bool] = None
    validation_errors: List[str] = Field(default_factory=list)


class WorkflowPayload(BaseModel):
    nodes: List[Node]
    edges: List[Edge]
    state: ExportedState = Field(default_factory=ExportedState)


class WorkflowExport(BaseModel):
    """Top-level export document."""
    version: str
    metadata: WorkflowMetadata
    workflow: WorkflowPayload

    @field_validator('version')
    @classmethod
    def validate_version(cls, version):
        if not version or not version.strip():
            raise ValueError("Missing version information")
        return version

    def to_graph(self) -> GraphModel:
        return GraphModel.of(self.workflow.nodes, self.workflow.edges)

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)


class ImportResult(BaseModel):
    success: bool
    data: Optional[WorkflowExport] = None
    error: Optional[str] = None


def export_workflow(
    graph: GraphModel,
    name: Optional[str] = None,
    description: Optional[str] = None,
    workflow_id: Optional[str] = None,
    report: Optional[ValidationReport] = None
) -> WorkflowExport:
    """Build an export document from a graph snapshot."""
    snapshot = graph.snapshot()
    state = ExportedState(id=workflow_id)
    if report is not None:
        state.is_valid = report.is_valid
        state.validation_errors = [issue.message for issue in report.errors]

    return WorkflowExport(
        version=EXPORT_VERSION,
        metadata=WorkflowMetadata(
            name=name or "Untitled Workflow",
            description=description or (
                f"Exported workflow with {len(snapshot.nodes)} nodes and {len(snapshot.edges)} connections"
            ),
        ),
        workflow=WorkflowPayload(nodes=snapshot.nodes, edges=snapshot.edges, state=state),
    )


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location.startswith("workflow.nodes"):
        return f"Invalid node structure detected ({location}: {first['msg']})"
    if location.startswith("workflow.edges"):
        return f"Invalid edge structure detected ({location}: {first['msg']})"
    if location.startswith("metadata"):
        return "Missing workflow metadata"
    if location == "workflow":
        return "Missing workflow data"
    if location == "version":
        return "Missing version information"
    return f"{location}: {first['msg']}" if location else first["msg"]


def import_workflow(json_text: Any) -> ImportResult:
    """Parse an export document. Never raises; failures are reported in the result."""
    try:
        raw = json.loads(json_text)
    except (TypeError, ValueError) as e:
        return ImportResult(success=False, error=f"Invalid JSON format: {e}")

    if not isinstance(raw, dict):
        return ImportResult(success=False, error="Invalid file format")

    try:
        data = WorkflowExport.model_validate(raw)
    except ValidationError as e:
        message = _describe_validation_error(e)
        logger.warning(f"Rejected workflow import: {message}")
        return ImportResult(success=False, error=message)

    logger.info(f"Imported workflow '{data.metadata.name}' with {len(data.workflow.nodes)} nodes")
    return ImportResult(success=True, data=data)


def sanitize_filename(name: str) -> str:
    """Lower-case, underscore separated file stem; ``workflow`` when nothing is left."""
    cleaned = re.sub(r"[^a-z0-9]", "_", name or "", flags=re.IGNORECASE)
    cleaned = re.sub(r"_+", "_", cleaned).strip("_").lower()
    return cleaned or "workflow"


def export_filename(export: WorkflowExport) -> str:
    return f"{sanitize_filename(export.metadata.name)}{FILE_SUFFIX}"


def generate_sample_workflow() -> WorkflowExport:
    """Email trigger feeding a Trello card action."""
    nodes = [
        Node(
            id="trigger-1",
            subtype="email-trigger",
            label="New Email Received",
            position={"x": 100, "y": 100},
            config={"emailFilters": {"subject": "Project Update", "keywords": ["urgent", "important"]}},
        ),
        Node(
            id="action-1",
            subtype="trello-action",
            label="Create Trello Card",
            position={"x": 400, "y": 100},
            config={
                "board": "Project Management",
                "list": "To Do",
                "cardTemplate": {"title": "New Task from Email", "description": "Auto-generated from email"},
            },
        ),
    ]
    edges = [Edge(id="e1-2", source="trigger-1", target="action-1")]
    return export_workflow(
        GraphModel(nodes=nodes, edges=edges),
        name="Sample Email to Task Workflow",
        description="A sample workflow that creates Trello cards from important emails",
    )
