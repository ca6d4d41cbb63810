"""Tests for the execution engine."""

import asyncio

import pytest

from flowgraph.core.execution_engine import ExecutionEngine
from flowgraph.core.exceptions import ExecutionEngineError, NodeExecutionError
from flowgraph.core.executor_registry import CallableExecutor, ExecutorRegistry, NodeExecutor
from flowgraph.core.notifications import Notifier
from flowgraph.executors import EmailTriggerExecutor, MailboxClient
from flowgraph.models.execution import (
    ExecutorResult, FailureKind, NodeStatus, NotificationLevel, RefusalReason, RunStatus,
)

from conftest import make_node, chain


class StaticMailbox(MailboxClient):
    def __init__(self, emails):
        self.emails = emails
        self.calls = []

    async def search(self, sender=None, subject=None, keywords=None, max_results=10):
        self.calls.append({"sender": sender, "subject": subject, "keywords": keywords})
        return self.emails[:max_results]


def recorder(calls, result=True):
    def executor(node):
        calls.append(node.id)
        return result
    return executor


class TestPreRunGates:
    """Test refusals before any node runs."""

    @pytest.mark.asyncio
    async def test_empty_graph_refused(self, engine, notifier):
        outcome = await engine.run([], [])

        assert not outcome.accepted
        assert outcome.refusal.reason == RefusalReason.EMPTY_GRAPH
        assert outcome.refusal.message == "Nothing to execute"
        assert outcome.run is None
        assert notifier.levels() == [NotificationLevel.ERROR]

    @pytest.mark.asyncio
    async def test_disconnected_action_refused(self, engine, registry):
        calls = []
        registry.register("test-trigger", recorder(calls))
        registry.register("test-action", recorder(calls))
        nodes = [make_node("T", "test-trigger"), make_node("A", "test-action", label="Archive")]

        outcome = await engine.run(nodes, [])

        assert not outcome.accepted
        assert outcome.refusal.reason == RefusalReason.DISCONNECTED_ACTIONS
        assert "Disconnected action nodes: Archive" in outcome.refusal.message
        assert outcome.refusal.node_ids == ["A"]
        assert calls == []
        assert engine.list_runs() == []
        assert engine.current_run is None
        assert engine.node_statuses == {}

    @pytest.mark.asyncio
    async def test_missing_authorization_refused(self, engine, capabilities):
        nodes = [make_node("t", "email-trigger", {"emailFilters": {"subject": "x"}}), make_node("a", "test-action")]

        outcome = await engine.run(nodes, chain("t", "a"))

        assert outcome.refusal.reason == RefusalReason.AUTHORIZATION_REQUIRED
        assert outcome.refusal.capabilities == ["gmail"]
        assert outcome.refusal.node_ids == ["t"]

    @pytest.mark.asyncio
    async def test_refusal_keeps_previous_statuses(self, engine, registry):
        registry.register("test-trigger", recorder([]))
        await engine.run([make_node("t", "test-trigger")], [])
        assert engine.get_node_status("t") == NodeStatus.SUCCESS

        await engine.run([], [])

        assert engine.get_node_status("t") == NodeStatus.SUCCESS
        assert len(engine.list_runs()) == 1


class TestRunLifecycle:
    """Test sequential execution."""

    @pytest.mark.asyncio
    async def test_successful_chain(self, engine, registry, notifier):
        calls = []
        for subtype in ("test-trigger", "test-action"):
            registry.register(subtype, recorder(calls))
        nodes = [make_node("a2", "test-action"), make_node("t", "test-trigger"), make_node("a1", "test-action")]

        outcome = await engine.run(nodes, chain("t", "a1", "a2"), workflow_id="wf-1")
        run = outcome.run

        assert outcome.accepted
        assert calls == ["t", "a1", "a2"]
        assert run.status == RunStatus.SUCCESS
        assert run.workflow_id == "wf-1"
        assert run.execution_order == ["t", "a1", "a2"]
        assert run.completed_count == 3
        assert run.error_count == 0
        assert run.end_time is not None
        assert [result.status for result in run.node_results] == [NodeStatus.SUCCESS] * 3
        assert all(engine.get_node_status(node_id) == NodeStatus.SUCCESS for node_id in calls)
        assert notifier.levels()[0] == NotificationLevel.INFO
        assert notifier.levels()[-1] == NotificationLevel.SUCCESS
        assert run.logs[0].message == "Starting workflow execution"
        assert run.logs[-1].message == "Workflow completed successfully"

    @pytest.mark.asyncio
    async def test_failing_action_stops_run(self, engine, registry):
        calls = []
        registry.register("test-trigger", recorder(calls))
        registry.register("test-action", lambda node: {"success": False, "error": "Service unavailable"})
        registry.register("test-other", recorder(calls))
        nodes = [make_node("t", "test-trigger"), make_node("a", "test-action"), make_node("b", "test-other")]

        outcome = await engine.run(nodes, chain("t", "a", "b"))
        run = outcome.run

        assert run.status == RunStatus.ERROR
        assert run.completed_count == 1
        assert run.error_count == 1
        assert run.result_for("a").status == NodeStatus.ERROR
        assert run.result_for("a").failure_kind == FailureKind.EXECUTOR_FAILURE
        assert run.result_for("a").error == "Service unavailable"
        assert run.result_for("b") is None
        assert calls == ["t"]
        assert engine.get_node_status("b") == NodeStatus.IDLE

    @pytest.mark.asyncio
    async def test_unproductive_trigger_is_failure(self, engine, registry, capabilities):
        capabilities.grant("gmail")
        mailbox = StaticMailbox([])
        registry.register("email-trigger", EmailTriggerExecutor(mailbox))
        trigger = make_node("t", "email-trigger", {"emailFilters": {"subject": "Invoice"}})

        outcome = await engine.run([trigger], [])
        result = outcome.run.result_for("t")

        assert outcome.run.status == RunStatus.ERROR
        assert result.status == NodeStatus.ERROR
        assert result.error == "No emails found matching the trigger filters"
        assert mailbox.calls == [{"sender": None, "subject": "Invoice", "keywords": None}]

    @pytest.mark.asyncio
    async def test_productive_trigger(self, engine, registry, capabilities):
        capabilities.grant("gmail")
        registry.register("email-trigger", EmailTriggerExecutor(StaticMailbox([{"id": "m1"}])))
        trigger = make_node("t", "email-trigger", {"emailFilters": {"subject": "Invoice"}})

        outcome = await engine.run([trigger], [])

        assert outcome.run.status == RunStatus.SUCCESS
        assert outcome.run.result_for("t").output == {"emails": [{"id": "m1"}], "count": 1}

    @pytest.mark.asyncio
    async def test_custom_productive_predicate(self, engine, registry):
        registry.register("test-trigger", CountingExecutor(found=0))

        outcome = await engine.run([make_node("t", "test-trigger", label="Poll")], [])

        assert outcome.run.status == RunStatus.ERROR
        assert outcome.run.result_for("t").error == '"Poll" completed without producing a result'

    @pytest.mark.asyncio
    async def test_exception_becomes_unexpected_exception(self, engine, registry):
        def explode(node):
            raise RuntimeError("boom")

        registry.register("test-trigger", explode)

        outcome = await engine.run([make_node("t", "test-trigger")], [])
        result = outcome.run.result_for("t")

        assert outcome.run.status == RunStatus.ERROR
        assert result.failure_kind == FailureKind.UNEXPECTED_EXCEPTION
        assert "RuntimeError: boom" in result.error

    @pytest.mark.asyncio
    async def test_node_execution_error_is_executor_failure(self, engine, registry):
        def fail(node):
            raise NodeExecutionError("quota exceeded", node_id=node.id)

        registry.register("test-trigger", fail)

        outcome = await engine.run([make_node("t", "test-trigger")], [])

        assert outcome.run.result_for("t").failure_kind == FailureKind.EXECUTOR_FAILURE
        assert outcome.run.result_for("t").error == "quota exceeded"

    @pytest.mark.asyncio
    async def test_missing_configuration(self, engine, registry, capabilities):
        capabilities.grant("trello")
        calls = []
        registry.register("test-trigger", recorder(calls))
        registry.register("trello-action", recorder(calls))
        nodes = [make_node("t", "test-trigger"), make_node("a", "trello-action", {"board": "b"})]

        outcome = await engine.run(nodes, chain("t", "a"))
        result = outcome.run.result_for("a")

        assert result.failure_kind == FailureKind.CONFIGURATION_MISSING
        assert "no list selected" in result.error
        assert calls == ["t"]

    @pytest.mark.asyncio
    async def test_default_executor_needs_config(self, engine):
        outcome = await engine.run([make_node("t", "test-trigger", {})], [])

        assert outcome.run.result_for("t").failure_kind == FailureKind.CONFIGURATION_MISSING

    @pytest.mark.asyncio
    async def test_authorization_rechecked_per_node(self, registry, notifier):
        policy_engine = ExecutionEngine(
            executor_registry=registry,
            capability_provider=RevokingProvider(),
            notifier=notifier,
            status_reset_delay=60.0,
        )
        registry.register("test-trigger", recorder([]))
        nodes = [
            make_node("t", "test-trigger"),
            make_node("a", "asana-action", {"taskName": "Follow up", "projectId": "p"}),
        ]

        outcome = await policy_engine.run(nodes, chain("t", "a"))

        assert outcome.run.result_for("a").failure_kind == FailureKind.AUTHORIZATION_MISSING

    @pytest.mark.asyncio
    async def test_failing_capability_query_during_run(self, registry, notifier):
        provider = FlakyProvider(fail_on=2)
        flaky_engine = ExecutionEngine(
            executor_registry=registry,
            capability_provider=provider,
            notifier=notifier,
            status_reset_delay=60.0,
        )
        calls = []
        registry.register("test-trigger", recorder(calls))
        registry.register("trello-action", recorder(calls))
        nodes = [make_node("t", "test-trigger"), make_node("a", "trello-action", {"board": "b", "list": "l"})]

        outcome = await flaky_engine.run(nodes, chain("t", "a"))
        result = outcome.run.result_for("a")

        assert outcome.accepted
        assert outcome.run.status == RunStatus.ERROR
        assert outcome.run.is_sealed
        assert result.failure_kind == FailureKind.AUTHORIZATION_MISSING
        assert "ConnectionError: token service unreachable" in result.error
        assert calls == ["t"]
        assert flaky_engine.get_node_status("a") == NodeStatus.ERROR
        assert len(flaky_engine.list_runs()) == 1
        assert not flaky_engine.is_running

    @pytest.mark.asyncio
    async def test_failing_capability_query_before_run(self, registry, notifier):
        flaky_engine = ExecutionEngine(
            executor_registry=registry,
            capability_provider=FlakyProvider(fail_on=1),
            notifier=notifier,
        )
        nodes = [make_node("t", "test-trigger"), make_node("a", "trello-action", {"board": "b", "list": "l"})]

        outcome = await flaky_engine.run(nodes, chain("t", "a"))

        assert not outcome.accepted
        assert outcome.refusal.reason == RefusalReason.AUTHORIZATION_REQUIRED
        assert outcome.refusal.capabilities == ["trello"]
        assert outcome.refusal.node_ids == ["a"]
        assert "ConnectionError" in outcome.refusal.message
        assert flaky_engine.list_runs() == []
        assert not flaky_engine.is_running

    @pytest.mark.asyncio
    async def test_failing_productive_predicate(self, engine, registry):
        registry.register(
            "test-trigger",
            CallableExecutor(lambda node: {"success": True, "output": {}}, productive=lambda r: r.output["items"]),
        )

        outcome = await engine.run([make_node("t", "test-trigger")], [])
        result = outcome.run.result_for("t")

        assert outcome.run.status == RunStatus.ERROR
        assert result.failure_kind == FailureKind.UNEXPECTED_EXCEPTION
        assert result.error.startswith("KeyError")
        assert engine.get_node_status("t") == NodeStatus.ERROR
        assert engine.list_runs()[0].id == outcome.run.id
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_failed_result_keeps_zero_duration(self, engine, registry):
        registry.register("test-trigger", RejectingExecutor())

        outcome = await engine.run([make_node("t", "test-trigger")], [])
        result = outcome.run.result_for("t")

        assert result.error == "rejected"
        assert result.duration == 0.0

    @pytest.mark.asyncio
    async def test_failing_notifier_does_not_break_run(self, registry):
        class BrokenNotifier(Notifier):
            def notify(self, level, message, details=None):
                raise RuntimeError("toast queue closed")

        registry.register("test-trigger", recorder([]))
        quiet_engine = ExecutionEngine(executor_registry=registry, notifier=BrokenNotifier(), status_reset_delay=60.0)

        outcome = await quiet_engine.run([make_node("t", "test-trigger")], [])

        assert outcome.run.status == RunStatus.SUCCESS
        assert not quiet_engine.is_running

    @pytest.mark.asyncio
    async def test_internal_error_seals_started_run(self, engine, registry, monkeypatch):
        registry.register("test-trigger", recorder([]))

        def broken_record(run, node, result):
            raise RuntimeError("bookkeeping failed")

        monkeypatch.setattr(engine, "_record_result", broken_record)

        outcome = await engine.run([make_node("t", "test-trigger")], [])

        assert outcome.accepted
        assert outcome.run.status == RunStatus.ERROR
        assert outcome.run.end_time is not None
        assert outcome.run.logs[-2].details == "RuntimeError: bookkeeping failed"
        assert engine.get_node_status("t") == NodeStatus.ERROR
        assert engine.list_runs() == [outcome.run]
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_timeout(self, registry, notifier):
        async def slow(node):
            await asyncio.sleep(1)
            return True

        registry.register("test-trigger", slow)
        engine = ExecutionEngine(executor_registry=registry, notifier=notifier, default_node_timeout=0.01)

        outcome = await engine.run([make_node("t", "test-trigger")], [])

        assert outcome.run.result_for("t").failure_kind == FailureKind.EXECUTOR_FAILURE
        assert "timed out" in outcome.run.result_for("t").error

    @pytest.mark.asyncio
    async def test_node_timeout_from_config(self, engine, registry):
        async def slow(node):
            await asyncio.sleep(1)
            return True

        registry.register("test-trigger", slow)

        outcome = await engine.run([make_node("t", "test-trigger", {"timeout": 0.01})], [])

        assert "timed out after 0.01s" in outcome.run.result_for("t").error


class CountingExecutor(NodeExecutor):
    def __init__(self, found):
        self.found = found

    async def execute(self, node):
        return ExecutorResult(success=True, output={"found": self.found})

    def is_productive(self, result):
        return result.output["found"] > 0


class RevokingProvider:
    """Grants asana for the pre-run gate, then loses it."""

    def __init__(self):
        self.checks = 0

    async def has_capability(self, tag):
        self.checks += 1
        return self.checks == 1


class FlakyProvider:
    """Holds every capability but its query fails on one call."""

    def __init__(self, fail_on):
        self.fail_on = fail_on
        self.checks = 0

    async def has_capability(self, tag):
        self.checks += 1
        if self.checks == self.fail_on:
            raise ConnectionError("token service unreachable")
        return True


class RejectingExecutor(NodeExecutor):
    async def execute(self, node):
        return ExecutorResult(success=False, duration=0.0, error="rejected")


class TestConcurrencyAndCancellation:
    @pytest.mark.asyncio
    async def test_second_run_refused_while_running(self, engine, registry):
        release = asyncio.Event()

        async def wait(node):
            await release.wait()
            return True

        registry.register("test-trigger", wait)
        nodes = [make_node("t", "test-trigger")]

        first = asyncio.create_task(engine.run(nodes, []))
        await asyncio.sleep(0.01)
        assert engine.is_running

        second = await engine.run(nodes, [])
        release.set()
        first_outcome = await first

        assert second.refusal.reason == RefusalReason.RUN_IN_PROGRESS
        assert first_outcome.run.status == RunStatus.SUCCESS
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_cancel_between_nodes(self, engine, registry):
        calls = []

        async def cancel_after(node):
            calls.append(node.id)
            assert engine.cancel(engine.current_run.id)
            return True

        registry.register("test-trigger", cancel_after)
        registry.register("test-action", recorder(calls))

        outcome = await engine.run(
            [make_node("t", "test-trigger"), make_node("a", "test-action")], chain("t", "a")
        )
        run = outcome.run

        assert run.status == RunStatus.CANCELLED
        assert calls == ["t"]
        assert run.completed_count == 1
        assert run.error_count == 0
        assert run.result_for("a") is None
        assert engine.get_node_status("a") == NodeStatus.IDLE

    def test_cancel_when_idle(self, engine):
        assert engine.cancel() is False

    @pytest.mark.asyncio
    async def test_cancel_unknown_run(self, engine, registry):
        results = []

        async def try_cancel(node):
            results.append(engine.cancel("other-run"))
            return True

        registry.register("test-trigger", try_cancel)
        outcome = await engine.run([make_node("t", "test-trigger")], [])

        assert results == [False]
        assert outcome.run.status == RunStatus.SUCCESS


class TestHistoryAndStatusReset:
    @pytest.mark.asyncio
    async def test_statuses_reset_after_delay(self, registry, notifier):
        registry.register("test-trigger", recorder([]))
        engine = ExecutionEngine(executor_registry=registry, notifier=notifier, status_reset_delay=0.0)

        await engine.run([make_node("t", "test-trigger")], [])
        await asyncio.sleep(0.05)

        assert engine.get_node_status("t") == NodeStatus.IDLE
        assert engine.list_runs()[0].status == RunStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_history_limit_and_order(self, registry, notifier):
        registry.register("test-trigger", recorder([]))
        engine = ExecutionEngine(executor_registry=registry, notifier=notifier, run_history_limit=2)

        run_ids = []
        for _ in range(3):
            outcome = await engine.run([make_node("t", "test-trigger")], [])
            run_ids.append(outcome.run.id)

        assert [run.id for run in engine.list_runs()] == [run_ids[2], run_ids[1]]
        assert engine.get_run(run_ids[2]).is_sealed
        with pytest.raises(ExecutionEngineError):
            engine.get_run(run_ids[0])

        engine.clear_history()
        assert engine.list_runs() == []

    @pytest.mark.asyncio
    async def test_run_records_are_immutable(self, engine, registry):
        registry.register("test-trigger", recorder([]))
        outcome = await engine.run([make_node("t", "test-trigger")], [])

        with pytest.raises(Exception):
            outcome.run.status = RunStatus.ERROR


class TestExecutorRegistry:
    def test_register_and_list(self):
        registry = ExecutorRegistry()

        def poll(node):
            """Poll the inbox."""
            return True

        registry.register("test-trigger", poll)

        assert registry.has_executor("test-trigger")
        assert registry.list_executors() == {"test-trigger": "Poll the inbox."}
        assert registry.subtypes() == ["test-trigger"]

    def test_duplicate_registration(self):
        from flowgraph.core.exceptions import ExecutorRegistryError

        registry = ExecutorRegistry()
        registry.register("x", lambda node: True)

        with pytest.raises(ExecutorRegistryError):
            registry.register("x", lambda node: True)
        registry.register("x", lambda node: False, replace=True)

        with pytest.raises(ExecutorRegistryError):
            registry.register("", lambda node: True)
        with pytest.raises(ExecutorRegistryError):
            registry.register("y", "not callable")

    def test_unregister_falls_back_to_default(self):
        registry = ExecutorRegistry()
        registry.register("x", lambda node: True)

        assert registry.unregister("x")
        assert not registry.unregister("x")
        assert registry.get_executor("x") is registry.default_executor

    @pytest.mark.asyncio
    async def test_unsupported_return_type(self, engine, registry):
        registry.register("test-trigger", lambda node: "done")

        outcome = await engine.run([make_node("t", "test-trigger")], [])

        assert outcome.run.result_for("t").failure_kind == FailureKind.UNEXPECTED_EXCEPTION
