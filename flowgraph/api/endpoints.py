"""FastAPI REST endpoints for the workflow engine."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.exceptions import (
    FlowGraphError,
    GraphValidationError,
    GraphEditError,
    ExecutionEngineError,
    ExecutorRegistryError,
    StorageError,
    APIError,
)
from ..core.execution_engine import ExecutionEngine
from ..core.graph_manager import GraphManager
from ..core.graph_validator import get_validation_summary
from ..core.import_export import export_workflow, import_workflow
from ..core.logging import get_logger
from ..core.scheduler import build_schedule
from ..core.validation_cache import CachedValidator
from ..models.core import Node, Edge, GraphModel, GraphSummary, ValidationReport

logger = get_logger(__name__)

router = APIRouter(tags=["workflows"])


def get_graph_manager(request: Request) -> GraphManager:
    """Dependency to get graph manager."""
    graph_manager = getattr(request.app.state, "graph_manager", None)
    if graph_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Graph manager not initialized"
        )
    return graph_manager


def get_execution_engine(request: Request) -> ExecutionEngine:
    """Dependency to get execution engine."""
    engine = getattr(request.app.state, "execution_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Execution engine not initialized"
        )
    return engine


def get_validator(request: Request) -> CachedValidator:
    """Dependency to get the cached validator."""
    validator = getattr(request.app.state, "validator", None)
    if validator is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Validator not initialized"
        )
    return validator


def status_for_error(error: FlowGraphError) -> int:
    """HTTP status code for a flowgraph exception."""
    if isinstance(error, APIError):
        return error.status_code
    if isinstance(error, (GraphValidationError, GraphEditError, ExecutorRegistryError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, ExecutionEngineError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, StorageError) and error.recoverable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _workflow_not_found(workflow_id: str) -> APIError:
    return APIError(
        f"Workflow with ID '{workflow_id}' not found",
        status_code=status.HTTP_404_NOT_FOUND,
        error_code="WorkflowNotFound",
        details={"workflow_id": workflow_id},
    )


# Request/Response models
class GraphRequest(BaseModel):
    """A graph submitted for validation or scheduling."""
    nodes: List[Node] = Field(default_factory=list, description="Graph nodes")
    edges: List[Edge] = Field(default_factory=list, description="Graph edges")

    def to_graph(self) -> GraphModel:
        return GraphModel(nodes=self.nodes, edges=self.edges)


class CreateWorkflowRequest(GraphRequest):
    """Request model for storing a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    description: str = Field(default="", description="Workflow description")
    id: Optional[str] = Field(default=None, description="Store under this ID, replacing any existing workflow")
    require_valid: bool = Field(default=False, description="Reject the workflow instead of storing it as a draft")


class CreateWorkflowResponse(BaseModel):
    """Response model for workflow creation."""
    workflow_id: str = Field(..., description="Unique identifier of the stored workflow")
    message: str = Field(..., description="Success message")
    is_valid: bool = Field(..., description="Validation verdict at save time")
    quality_score: int = Field(..., description="Validation score at save time")
    validation_errors: List[str] = Field(default_factory=list, description="Validation error messages")
    validation_warnings: List[str] = Field(default_factory=list, description="Validation warnings")


class ValidationResponse(BaseModel):
    report: ValidationReport
    summary: str


class ScheduleResponse(BaseModel):
    execution_order: List[str]
    topological_order: List[str]
    layered_levels: List[List[str]]
    is_complete: bool


class WorkflowDetail(BaseModel):
    summary: GraphSummary
    graph: GraphModel
    execution_order: List[str]
    layered_levels: List[List[str]]


# Endpoints

@router.post(
    "/workflows/validate",
    response_model=ValidationResponse,
    summary="Validate a workflow graph",
    description="Validate a workflow graph without storing it"
)
async def validate_workflow(
    request: GraphRequest,
    validator: CachedValidator = Depends(get_validator)
) -> ValidationResponse:
    report = validator.validate(request.nodes, request.edges)
    logger.debug(f"Graph validation completed. Valid: {report.is_valid}, score: {report.score}")
    return ValidationResponse(report=report, summary=get_validation_summary(report))


@router.post(
    "/workflows/schedule",
    response_model=ScheduleResponse,
    summary="Compute execution order and DAG levels"
)
async def schedule_workflow(request: GraphRequest) -> ScheduleResponse:
    schedule = build_schedule(request.to_graph())
    return ScheduleResponse(
        execution_order=schedule.execution_order,
        topological_order=schedule.topological_order,
        layered_levels=schedule.layered_levels,
        is_complete=schedule.is_complete,
    )


@router.post(
    "/workflows",
    response_model=CreateWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store a workflow graph",
    description="Validate, schedule and store a workflow graph. Invalid graphs are stored as drafts."
)
async def create_workflow(
    request: CreateWorkflowRequest,
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> CreateWorkflowResponse:
    """
    Store a workflow graph.

    Raises:
        StorageError: If the workflow cannot be stored
    """
    logger.info(f"Creating workflow: {request.name}")
    graph = request.to_graph()
    report = graph_manager.validator.validate_graph(graph)

    workflow_id = graph_manager.save_workflow(
        graph, request.name, description=request.description,
        graph_id=request.id, require_valid=request.require_valid
    )
    logger.info(f"Stored workflow '{request.name}' with ID: {workflow_id}")

    return CreateWorkflowResponse(
        workflow_id=workflow_id,
        message=f"Workflow '{request.name}' saved successfully",
        is_valid=report.is_valid,
        quality_score=report.score,
        validation_errors=[issue.message for issue in report.errors],
        validation_warnings=[issue.message for issue in report.warnings],
    )


@router.get(
    "/workflows",
    response_model=List[GraphSummary],
    summary="List stored workflows"
)
async def list_workflows(graph_manager: GraphManager = Depends(get_graph_manager)) -> List[GraphSummary]:
    return graph_manager.list_graphs()


@router.post(
    "/workflows/import",
    response_model=CreateWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Import a .flow.json document"
)
async def import_workflow_document(
    request: Request,
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> CreateWorkflowResponse:
    result = import_workflow(await request.body())
    if not result.success:
        raise APIError(
            result.error,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="InvalidWorkflowDocument",
            endpoint="/workflows/import",
        )

    data = result.data
    graph = data.to_graph()
    report = graph_manager.validator.validate_graph(graph)
    workflow_id = graph_manager.save_workflow(
        graph, data.metadata.name, description=data.metadata.description or ""
    )
    return CreateWorkflowResponse(
        workflow_id=workflow_id,
        message=f"Workflow '{data.metadata.name}' imported successfully",
        is_valid=report.is_valid,
        quality_score=report.score,
        validation_errors=[issue.message for issue in report.errors],
        validation_warnings=[issue.message for issue in report.warnings],
    )


@router.get(
    "/workflows/{workflow_id}",
    response_model=WorkflowDetail,
    summary="Get a stored workflow"
)
async def get_workflow(
    workflow_id: str,
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> WorkflowDetail:
    if not graph_manager.exists(workflow_id):
        raise _workflow_not_found(workflow_id)

    dag = graph_manager.get_dag(workflow_id)
    return WorkflowDetail(
        summary=graph_manager.get_summary(workflow_id),
        graph=graph_manager.load_graph(workflow_id),
        execution_order=dag["execution_order"],
        layered_levels=dag["layered_levels"],
    )


@router.get(
    "/workflows/{workflow_id}/export",
    summary="Export a stored workflow as a .flow.json document"
)
async def export_stored_workflow(
    workflow_id: str,
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> JSONResponse:
    if not graph_manager.exists(workflow_id):
        raise _workflow_not_found(workflow_id)

    summary = graph_manager.get_summary(workflow_id)
    graph = graph_manager.load_graph(workflow_id)
    export = export_workflow(
        graph,
        name=summary.name,
        description=summary.description,
        workflow_id=workflow_id,
        report=graph_manager.validator.validate_graph(graph),
    )
    return JSONResponse(content=export.model_dump(mode="json"))


@router.delete(
    "/workflows/{workflow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a stored workflow"
)
async def delete_workflow(
    workflow_id: str,
    graph_manager: GraphManager = Depends(get_graph_manager)
):
    logger.info(f"Deleting workflow: {workflow_id}")
    if not graph_manager.delete_graph(workflow_id):
        raise _workflow_not_found(workflow_id)


@router.post(
    "/workflows/{workflow_id}/run",
    summary="Run a stored workflow",
    description="Run the workflow once. Refused runs answer 409 with the refusal reason."
)
async def run_workflow(
    workflow_id: str,
    graph_manager: GraphManager = Depends(get_graph_manager),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> JSONResponse:
    if not graph_manager.exists(workflow_id):
        raise _workflow_not_found(workflow_id)

    graph = graph_manager.load_graph(workflow_id)
    logger.info(f"Starting workflow execution for workflow: {workflow_id}")
    outcome = await execution_engine.run(graph.nodes, graph.edges, workflow_id=workflow_id)

    status_code = status.HTTP_200_OK if outcome.accepted else status.HTTP_409_CONFLICT
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


@router.post(
    "/runs/{run_id}/cancel",
    summary="Cancel a running workflow"
)
async def cancel_run(
    run_id: str,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> Dict[str, Any]:
    logger.info(f"Cancelling workflow execution: {run_id}")
    cancelled = execution_engine.cancel(run_id)
    if not cancelled:
        return {
            "message": f"Run {run_id} could not be cancelled (may not be active)",
            "cancelled": False
        }
    return {
        "message": f"Cancellation requested for run {run_id}",
        "cancelled": True
    }


@router.get(
    "/runs",
    summary="List recent runs, most recent first"
)
async def list_runs(execution_engine: ExecutionEngine = Depends(get_execution_engine)) -> List[Dict[str, Any]]:
    return [run.model_dump(mode="json") for run in execution_engine.list_runs()]


@router.get(
    "/runs/{run_id}",
    summary="Get a run by ID"
)
async def get_run(
    run_id: str,
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> Dict[str, Any]:
    try:
        run = execution_engine.get_run(run_id)
    except ExecutionEngineError as e:
        raise APIError(e.message, status_code=status.HTTP_404_NOT_FOUND, error_code="RunNotFound")
    return run.model_dump(mode="json")


@router.get("/health", summary="Health check")
async def health_check(request: Request) -> Dict[str, Any]:
    engine: Optional[ExecutionEngine] = getattr(request.app.state, "execution_engine", None)
    return {
        "status": "healthy",
        "service": "flowgraph",
        "running": bool(engine and engine.is_running),
        "timestamp": datetime.utcnow().isoformat(),
    }
