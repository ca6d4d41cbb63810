"""Execution Engine for workflow runs."""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Iterable

from ..models.core import Node, Edge, GraphModel, IssueType
from ..models.execution import (
    NodeStatus, RunStatus, FailureKind, NotificationLevel, RefusalReason,
    ExecutorResult, NodeResult, ExecutionLog, ExecutionRun,
    NodeExecutionState, RunRefusal, RunOutcome,
)
from .authorization import AuthorizationPolicy, CapabilityProvider, InMemoryCapabilityProvider
from .config_rules import ConfigRuleRegistry, create_default_rule_registry
from .exceptions import ExecutionEngineError, NodeExecutionError
from .executor_registry import ExecutorRegistry, NodeExecutor
from .logging import get_logger, log_with_context, set_logging_context, clear_logging_context
from .notifications import Notifier
from .scheduler import execution_order, disconnected_actions

logger = get_logger(__name__)


class ExecutionEngine:
    """Walks a graph in execution order, one node at a time.

    Any node failure stops the run. Cancellation is honoured between nodes,
    never in the middle of an executor call. After a run is sealed the
    per-node statuses go back to idle once ``status_reset_delay`` seconds
    have passed.
    """

    def __init__(
        self,
        executor_registry: Optional[ExecutorRegistry] = None,
        authorization_policy: Optional[AuthorizationPolicy] = None,
        capability_provider: Optional[CapabilityProvider] = None,
        notifier: Optional[Notifier] = None,
        rule_registry: Optional[ConfigRuleRegistry] = None,
        status_reset_delay: float = 3.0,
        default_node_timeout: Optional[float] = None,
        run_history_limit: int = 10
    ):
        """Initialize the execution engine.

        Args:
            executor_registry: Registry resolving node subtypes to executors
            authorization_policy: Maps subtypes to required capability tags
            capability_provider: Answers which capabilities are currently held
            notifier: Sink for user facing notifications; defaults to a no-op
            rule_registry: Configuration rules used to detect missing configuration
            status_reset_delay: Seconds before node statuses return to idle
            default_node_timeout: Per executor call timeout in seconds
            run_history_limit: Number of sealed runs kept in history
        """
        self.executor_registry = executor_registry or ExecutorRegistry()
        self.authorization_policy = authorization_policy or AuthorizationPolicy()
        self.capability_provider = capability_provider or InMemoryCapabilityProvider()
        self.notifier = notifier or Notifier()
        self.rule_registry = rule_registry or create_default_rule_registry()
        self.status_reset_delay = status_reset_delay
        self.default_node_timeout = default_node_timeout
        self.run_history_limit = run_history_limit

        self.node_statuses: Dict[str, NodeExecutionState] = {}
        self._current_run: Optional[ExecutionRun] = None
        self._history: List[ExecutionRun] = []
        self._busy = False
        self._cancel_requested = False
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_running(self) -> bool:
        return self._busy

    @property
    def current_run(self) -> Optional[ExecutionRun]:
        return self._current_run

    def get_node_status(self, node_id: str) -> NodeStatus:
        state = self.node_statuses.get(node_id)
        return state.status if state else NodeStatus.IDLE

    def list_runs(self) -> List[ExecutionRun]:
        """Sealed runs, most recent first."""
        return list(self._history)

    def get_run(self, run_id: str) -> ExecutionRun:
        """
        Look up a run by ID.

        Raises:
            ExecutionEngineError: If the run is neither current nor in history
        """
        if self._current_run is not None and self._current_run.id == run_id:
            return self._current_run
        for run in self._history:
            if run.id == run_id:
                return run
        raise ExecutionEngineError(f"Run {run_id} not found", run_id=run_id)

    def clear_history(self) -> None:
        self._history.clear()
        logger.debug("Execution history cleared")

    def cancel(self, run_id: Optional[str] = None) -> bool:
        """Request cancellation of the running run. Returns False if nothing matches."""
        run = self._current_run
        if not self._busy or run is None or run.is_sealed:
            return False
        if run_id is not None and run.id != run_id:
            return False
        self._cancel_requested = True
        logger.info(f"Cancellation requested for run {run.id}")
        return True

    def reset_statuses(self, run_id: Optional[str] = None) -> None:
        """Return every node to idle unless a newer run has started."""
        if self._busy:
            return
        if run_id is not None and self._current_run is not None and self._current_run.id != run_id:
            return
        for node_id in self.node_statuses:
            self.node_statuses[node_id] = NodeExecutionState()
        self._reset_handle = None

    async def check_preconditions(self, graph: GraphModel) -> Optional[RunRefusal]:
        """Pre-run gates. Returns the refusal, or None when the run may start."""
        if not graph.nodes:
            return RunRefusal(reason=RefusalReason.EMPTY_GRAPH, message="Nothing to execute")

        disconnected = disconnected_actions(graph)
        if disconnected:
            names = ", ".join(node.display_name for node in disconnected)
            return RunRefusal(
                reason=RefusalReason.DISCONNECTED_ACTIONS,
                message=f"Disconnected action nodes: {names}. Connect them to a trigger before running.",
                node_ids=[node.id for node in disconnected],
            )

        try:
            missing = await self.authorization_policy.missing_capabilities(graph.nodes, self.capability_provider)
        except Exception as e:
            logger.exception("Capability provider failed during the pre-run check")
            tags = []
            for node in graph.nodes:
                tag = self.authorization_policy.requires_authorization(node)
                if tag is not None and tag not in tags:
                    tags.append(tag)
            return RunRefusal(
                reason=RefusalReason.AUTHORIZATION_REQUIRED,
                message=f"Could not verify authorizations: {type(e).__name__}: {e}",
                node_ids=[node.id for node in graph.nodes if self.authorization_policy.requires_authorization(node)],
                capabilities=tags,
            )

        if missing:
            required = [
                node.id for node in graph.nodes
                if self.authorization_policy.requires_authorization(node) in missing
            ]
            return RunRefusal(
                reason=RefusalReason.AUTHORIZATION_REQUIRED,
                message=f"Authorization required: {', '.join(missing)}",
                node_ids=required,
                capabilities=missing,
            )

        return None

    async def run(self, nodes: Iterable[Node], edges: Iterable[Edge], workflow_id: Optional[str] = None) -> RunOutcome:
        """
        Run the graph once.

        Refused runs leave all engine state untouched. Accepted runs return
        the sealed ``ExecutionRun``.
        """
        if self._busy:
            return self._refuse(RunRefusal(
                reason=RefusalReason.RUN_IN_PROGRESS,
                message="A workflow run is already in progress",
            ))

        self._busy = True
        run = None
        previous = self._current_run
        try:
            graph = GraphModel.of(nodes, edges)
            refusal = await self.check_preconditions(graph)
            if refusal is not None:
                return self._refuse(refusal)

            try:
                run = await self._execute(graph, workflow_id)
            except Exception as e:
                started = self._current_run
                if started is None or started is previous or started.is_sealed:
                    raise
                logger.exception(f"Run {started.id} aborted")
                run = self._abort(started, e)
            return RunOutcome(accepted=True, run=run)
        finally:
            self._busy = False
            self._cancel_requested = False
            clear_logging_context()
            if run is not None:
                self._schedule_status_reset(run.id)

    def _refuse(self, refusal: RunRefusal) -> RunOutcome:
        logger.warning(f"Run refused ({refusal.reason.value}): {refusal.message}")
        self._notify(NotificationLevel.ERROR, "Cannot execute workflow", refusal.message)
        return RunOutcome(accepted=False, refusal=refusal)

    def _notify(self, level: NotificationLevel, message: str, details: Optional[str] = None) -> None:
        try:
            self.notifier.notify(level, message, details)
        except Exception:
            logger.exception(f"Notifier failed to deliver: {message}")

    async def _execute(self, graph: GraphModel, workflow_id: Optional[str]) -> ExecutionRun:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

        order = execution_order(graph.nodes, graph.edges)
        node_map = graph.node_map()
        run = ExecutionRun(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            start_time=datetime.utcnow(),
            execution_order=order,
        )
        self._cancel_requested = False
        self.node_statuses = {node_id: NodeExecutionState() for node_id in node_map}

        set_logging_context(run_id=run.id, workflow_id=workflow_id)
        logger.info(f"Starting run {run.id} with {len(order)} nodes in order")
        run = self._append_log(run, NotificationLevel.INFO, "Starting workflow execution")
        self._current_run = run
        self._notify(NotificationLevel.INFO, "Workflow execution started")

        final_status = RunStatus.SUCCESS
        for node_id in order:
            if self._cancel_requested:
                final_status = RunStatus.CANCELLED
                break

            node = node_map[node_id]
            self._set_status(node_id, NodeStatus.RUNNING)
            logger.debug(f"Node {node_id} -> running")
            run = self._append_log(run, NotificationLevel.INFO, f"Executing {node.display_name}", node=node)
            self._current_run = run

            try:
                result = await self._execute_node(node)
            except Exception as e:
                logger.exception(f"Node {node_id} raised outside its executor")
                result = NodeResult(
                    node_id=node_id,
                    status=NodeStatus.ERROR,
                    error=f"{type(e).__name__}: {e}",
                    failure_kind=FailureKind.UNEXPECTED_EXCEPTION,
                )
            run = self._record_result(run, node, result)
            self._current_run = run

            if result.status == NodeStatus.ERROR:
                final_status = RunStatus.ERROR
                break

        return self._finish(run, final_status)

    def _finish(self, run: ExecutionRun, status: RunStatus) -> ExecutionRun:
        run = self._seal(run, status)
        self._current_run = run
        self._history.insert(0, run)
        del self._history[self.run_history_limit:]
        return run

    def _abort(self, run: ExecutionRun, error: Exception) -> ExecutionRun:
        message = f"{type(error).__name__}: {error}"
        now = datetime.utcnow()
        for node_id, state in self.node_statuses.items():
            if state.status == NodeStatus.RUNNING:
                self.node_statuses[node_id] = NodeExecutionState(
                    status=NodeStatus.ERROR, started_at=state.started_at, ended_at=now, error=message
                )
        run = run.model_copy(update={"error_count": run.error_count + 1})
        run = self._append_log(run, NotificationLevel.ERROR, "Run aborted by an internal error", details=message)
        return self._finish(run, RunStatus.ERROR)

    async def _execute_node(self, node: Node) -> NodeResult:
        started = time.perf_counter()

        def failed(kind: FailureKind, message: str, duration: Optional[float] = None) -> NodeResult:
            return NodeResult(
                node_id=node.id,
                status=NodeStatus.ERROR,
                duration=duration if duration is not None else (time.perf_counter() - started) * 1000,
                error=message,
                failure_kind=kind,
            )

        config_errors = [issue for issue in self.rule_registry.check(node) if issue.type == IssueType.ERROR]
        if config_errors:
            return failed(FailureKind.CONFIGURATION_MISSING, "; ".join(issue.message for issue in config_errors))

        tag = self.authorization_policy.requires_authorization(node)
        if tag is not None:
            try:
                authorized = await self.capability_provider.has_capability(tag)
            except Exception as e:
                logger.exception(f"Authorization check for node {node.id} raised")
                return failed(FailureKind.AUTHORIZATION_MISSING, f"Authorization check for {tag} failed: {type(e).__name__}: {e}")
            if not authorized:
                return failed(FailureKind.AUTHORIZATION_MISSING, f"Authorization for {tag} is not available")

        executor = self.executor_registry.get_executor(node.subtype)
        timeout = self._timeout_for(node)
        try:
            if timeout:
                result = await asyncio.wait_for(executor.execute(node), timeout=timeout)
            else:
                result = await executor.execute(node)
        except asyncio.TimeoutError:
            return failed(FailureKind.EXECUTOR_FAILURE, f"Executor timed out after {timeout}s")
        except NodeExecutionError as e:
            return failed(FailureKind.EXECUTOR_FAILURE, e.message)
        except Exception as e:
            logger.exception(f"Executor for node {node.id} raised")
            return failed(FailureKind.UNEXPECTED_EXCEPTION, f"{type(e).__name__}: {e}")

        if not result.success:
            return failed(
                result.failure_kind or FailureKind.EXECUTOR_FAILURE,
                result.error or "Executor reported failure",
                result.duration,
            )

        try:
            if not executor.is_productive(result):
                return failed(FailureKind.EXECUTOR_FAILURE, self._unproductive_message(executor, node, result), result.duration)
        except Exception as e:
            logger.exception(f"Result check for node {node.id} raised")
            return failed(FailureKind.UNEXPECTED_EXCEPTION, f"{type(e).__name__}: {e}", result.duration)

        return NodeResult(
            node_id=node.id,
            status=NodeStatus.SUCCESS,
            duration=result.duration or (time.perf_counter() - started) * 1000,
            output=result.output,
        )

    def _unproductive_message(self, executor: NodeExecutor, node: Node, result: ExecutorResult) -> str:
        if result.error:
            return result.error
        describe = getattr(executor, "describe_unproductive", None)
        if describe is not None:
            return describe(result)
        return f'"{node.display_name}" completed without producing a result'

    def _timeout_for(self, node: Node) -> Optional[float]:
        value = node.config.get("timeout")
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return float(value)
        return self.default_node_timeout

    def _record_result(self, run: ExecutionRun, node: Node, result: NodeResult) -> ExecutionRun:
        now = datetime.utcnow()
        state = self.node_statuses[node.id]
        self.node_statuses[node.id] = NodeExecutionState(
            status=result.status, started_at=state.started_at, ended_at=now, error=result.error
        )

        if result.status == NodeStatus.SUCCESS:
            logger.debug(f"Node {node.id} -> success ({result.duration:.1f}ms)")
            run = run.model_copy(update={
                "node_results": run.node_results + [result],
                "completed_count": run.completed_count + 1,
            })
            return self._append_log(
                run, NotificationLevel.SUCCESS, f"Completed {node.display_name}",
                node=node, duration=result.duration,
            )

        log_with_context(
            logger, logging.ERROR, f"Node {node.id} failed ({result.failure_kind.value}): {result.error}",
            node_id=node.id, subtype=node.subtype, failure_kind=result.failure_kind.value,
            duration_ms=round(result.duration, 1),
        )
        self._notify(NotificationLevel.ERROR, f"{node.display_name} failed", result.error)
        run = run.model_copy(update={
            "node_results": run.node_results + [result],
            "error_count": run.error_count + 1,
        })
        return self._append_log(
            run, NotificationLevel.ERROR, f"Failed {node.display_name}",
            node=node, details=result.error, duration=result.duration,
        )

    def _seal(self, run: ExecutionRun, status: RunStatus) -> ExecutionRun:
        if status == RunStatus.SUCCESS:
            level, message = NotificationLevel.SUCCESS, "Workflow completed successfully"
        elif status == RunStatus.CANCELLED:
            level, message = NotificationLevel.WARNING, "Workflow execution cancelled"
        else:
            level, message = NotificationLevel.ERROR, "Workflow execution stopped on error"

        run = self._append_log(run, level, message)
        run = run.model_copy(update={"status": status, "end_time": datetime.utcnow()})
        log_with_context(
            logger, logging.INFO,
            f"Run {run.id} finished with status {status.value}: "
            f"{run.completed_count} completed, {run.error_count} failed",
            status=status.value, completed=run.completed_count, failed=run.error_count,
        )
        self._notify(level, message)
        return run

    def _append_log(
        self,
        run: ExecutionRun,
        level: NotificationLevel,
        message: str,
        node: Optional[Node] = None,
        details: Optional[str] = None,
        duration: Optional[float] = None
    ) -> ExecutionRun:
        entry = ExecutionLog(
            level=level,
            message=message,
            node_id=node.id if node else None,
            node_name=node.display_name if node else None,
            details=details,
            duration=duration,
        )
        return run.model_copy(update={"logs": run.logs + [entry]})

    def _set_status(self, node_id: str, status: NodeStatus) -> None:
        self.node_statuses[node_id] = NodeExecutionState(status=status, started_at=datetime.utcnow())

    def _schedule_status_reset(self, run_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.reset_statuses(run_id)
            return
        self._reset_handle = loop.call_later(self.status_reset_delay, self.reset_statuses, run_id)
