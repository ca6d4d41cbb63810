"""Graph Manager: persistence of workflow graphs and their scheduling artifacts."""

import uuid
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.core import GraphModel, GraphSummary
from ..storage.database import get_session
from ..storage.models import WorkflowRecord
from .error_recovery import RetryConfig, with_retry
from .exceptions import GraphValidationError, StorageError
from .graph_validator import ValidationEngine
from .logging import get_logger
from .scheduler import build_schedule

logger = get_logger(__name__)

_write_retry = RetryConfig(max_attempts=3, base_delay=0.05, max_delay=1.0)


class GraphManager:
    """Stores workflow graphs together with their execution order and DAG levels."""

    def __init__(self, db_session: Optional[Session] = None, validator: Optional[ValidationEngine] = None):
        """Initialize GraphManager with optional database session."""
        self._db_session = db_session
        self.validator = validator or ValidationEngine()

    def _open_session(self) -> Session:
        if self._db_session is not None:
            return self._db_session
        return get_session()

    def _close_session(self, db: Session) -> None:
        if db is not self._db_session:
            db.close()

    @with_retry(_write_retry)
    def save_graph(
        self,
        graph_id: str,
        graph: GraphModel,
        execution_order: List[str],
        layered_levels: List[List[str]],
        name: Optional[str] = None,
        description: str = "",
        quality_score: int = 0,
        is_valid: bool = False
    ) -> str:
        """
        Insert or replace a stored graph.

        Args:
            graph_id: Identifier to store the graph under
            graph: Graph snapshot to persist
            execution_order: Ordered node ids
            layered_levels: DAG levels, a list of node id lists
            name: Display name; defaults to the id for new records
            description: Free-text description
            quality_score: Validation score at save time
            is_valid: Validation verdict at save time

        Returns:
            str: The graph id

        Raises:
            StorageError: If the storage operation fails
        """
        logger.info(f"Saving graph {graph_id}")
        db = self._open_session()
        try:
            record = db.get(WorkflowRecord, graph_id)
            definition = graph.model_dump(mode="json")
            if record is None:
                record = WorkflowRecord(
                    id=graph_id,
                    name=name or graph_id,
                    created_at=datetime.utcnow(),
                )
                db.add(record)
            elif name:
                record.name = name

            record.description = description or record.description or ""
            record.definition = definition
            record.execution_order = list(execution_order)
            record.dag_structure = [list(level) for level in layered_levels]
            record.quality_score = quality_score
            record.is_valid = is_valid
            record.updated_at = datetime.utcnow()

            db.commit()
            logger.debug(f"Stored graph {graph_id} with {len(graph.nodes)} nodes")
            return graph_id

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while saving graph: {str(e)}")
            raise StorageError(f"Failed to store graph: {str(e)}", operation="save_graph", table="workflows")
        finally:
            self._close_session(db)

    def save_workflow(
        self,
        graph: GraphModel,
        name: str,
        description: str = "",
        graph_id: Optional[str] = None,
        require_valid: bool = False
    ) -> str:
        """
        Validate and schedule ``graph`` and store it with the results.

        Invalid graphs are stored as drafts unless ``require_valid`` is set;
        ``is_valid`` and ``quality_score`` record the verdict.

        Raises:
            GraphValidationError: If ``require_valid`` and the graph has errors
            StorageError: If the storage operation fails
        """
        graph_id = graph_id or self._generate_unique_id()
        report = self.validator.validate_graph(graph)

        if not report.is_valid:
            messages = [issue.message for issue in report.errors]
            if require_valid:
                raise GraphValidationError(
                    f"Workflow '{name}' has {len(messages)} validation errors",
                    validation_errors=messages,
                    workflow_name=name,
                )
            logger.warning(f"Saving invalid workflow '{name}': {len(messages)} errors")

        schedule = build_schedule(graph)

        return self.save_graph(
            graph_id,
            graph,
            schedule.topological_order,
            schedule.layered_levels,
            name=name,
            description=description,
            quality_score=report.score,
            is_valid=report.is_valid,
        )

    def _get_record(self, db: Session, graph_id: str) -> WorkflowRecord:
        record = db.get(WorkflowRecord, graph_id)
        if record is None:
            raise StorageError(
                f"Graph with ID '{graph_id}' not found",
                operation="load_graph", table="workflows", recoverable=False,
            )
        return record

    def exists(self, graph_id: str) -> bool:
        db = self._open_session()
        try:
            return db.get(WorkflowRecord, graph_id) is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up graph: {str(e)}", operation="exists")
        finally:
            self._close_session(db)

    def load_graph(self, graph_id: str) -> GraphModel:
        """
        Retrieve a stored graph.

        Raises:
            StorageError: If the graph is not found or storage fails
        """
        logger.debug(f"Loading graph {graph_id}")
        db = self._open_session()
        try:
            return GraphModel.model_validate(self._get_record(db, graph_id).definition)
        except SQLAlchemyError as e:
            logger.error(f"Database error while loading graph: {str(e)}")
            raise StorageError(f"Failed to retrieve graph: {str(e)}", operation="load_graph")
        finally:
            self._close_session(db)

    def get_dag(self, graph_id: str) -> Dict[str, list]:
        """Stored execution order and layered levels of a graph."""
        db = self._open_session()
        try:
            record = self._get_record(db, graph_id)
            return {
                "execution_order": list(record.execution_order or []),
                "layered_levels": [list(level) for level in record.dag_structure or []],
            }
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to retrieve DAG: {str(e)}", operation="get_dag")
        finally:
            self._close_session(db)

    def get_summary(self, graph_id: str) -> GraphSummary:
        db = self._open_session()
        try:
            return self._summarize(self._get_record(db, graph_id))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to retrieve graph: {str(e)}", operation="get_summary")
        finally:
            self._close_session(db)

    def list_graphs(self) -> List[GraphSummary]:
        """
        List all stored graphs, newest first.

        Raises:
            StorageError: If storage operation fails
        """
        db = self._open_session()
        try:
            records = db.query(WorkflowRecord).order_by(WorkflowRecord.created_at.desc()).all()
            summaries = [self._summarize(record) for record in records]
            logger.debug(f"Retrieved {len(summaries)} graph summaries")
            return summaries
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing graphs: {str(e)}")
            raise StorageError(f"Failed to list graphs: {str(e)}", operation="list_graphs")
        finally:
            self._close_session(db)

    def delete_graph(self, graph_id: str) -> bool:
        """
        Delete a graph by its ID.

        Returns:
            bool: True if the graph was deleted, False if not found

        Raises:
            StorageError: If storage operation fails
        """
        logger.info(f"Deleting graph with ID: {graph_id}")
        db = self._open_session()
        try:
            record = db.get(WorkflowRecord, graph_id)
            if record is None:
                logger.warning(f"Graph with ID '{graph_id}' not found for deletion")
                return False

            db.delete(record)
            db.commit()
            return True

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while deleting graph: {str(e)}")
            raise StorageError(f"Failed to delete graph: {str(e)}", operation="delete_graph")
        finally:
            self._close_session(db)

    @staticmethod
    def _summarize(record: WorkflowRecord) -> GraphSummary:
        return GraphSummary(
            id=record.id,
            name=record.name,
            description=record.description or "",
            created_at=record.created_at,
            node_count=len((record.definition or {}).get("nodes", [])),
            is_valid=bool(record.is_valid),
            quality_score=record.quality_score or 0,
        )

    def _generate_unique_id(self) -> str:
        return str(uuid.uuid4())
