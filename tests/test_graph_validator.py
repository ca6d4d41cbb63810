"""Tests for the validation engine and configuration rules."""

import pytest

from flowgraph.core.config_rules import ConfigRuleRegistry, create_default_rule_registry, build_issue
from flowgraph.core.graph_validator import (
    ValidationEngine,
    calculate_quality_score,
    find_cycles,
    find_reachable_nodes,
    get_validation_summary,
    validate_graph,
)
from flowgraph.models.core import (
    GraphModel, IssueCategory, IssueSeverity, IssueType, NodeKind, ValidationIssue,
)

from conftest import make_node, make_edge, chain


def issue_ids(report):
    return [issue.id for issue in report.issues]


@pytest.fixture
def validator():
    return ValidationEngine()


@pytest.fixture
def email_to_trello():
    nodes = [
        make_node("t1", "email-trigger", {"emailFilters": {"subject": "Invoice"}}, label="New Email"),
        make_node("a1", "trello-action", {
            "board": "b-1", "list": "l-1", "cardTemplate": {"title": "Pay {{subject}}"}
        }, label="Create Card"),
    ]
    return nodes, chain("t1", "a1")


class TestStructureChecks:
    """Test structural validation."""

    def test_empty_graph_is_a_warning_only(self, validator):
        report = validator.validate([], [])

        assert report.is_valid
        assert issue_ids(report) == ["empty-workflow"]
        assert report.warnings[0].severity == IssueSeverity.MEDIUM
        assert report.score == 95

    def test_valid_workflow(self, validator, email_to_trello):
        nodes, edges = email_to_trello
        report = validator.validate(nodes, edges)

        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []
        # terminal action is reported but not penalised
        assert issue_ids(report) == ["dead-end-a1"]
        assert report.score == 100

    def test_no_trigger_is_critical(self, validator):
        nodes = [make_node("a1", "test-action"), make_node("a2", "test-action")]
        report = validator.validate(nodes, chain("a1", "a2"))

        assert not report.is_valid
        assert report.has_critical_error()
        assert "no-triggers" in issue_ids(report)

    def test_no_actions_is_warning(self, validator):
        report = validator.validate([make_node("t1", "test-trigger")], [])

        assert "no-actions" in issue_ids(report)
        assert "isolated-t1" in issue_ids(report)
        assert report.is_valid

    def test_unreachable_excludes_triggers(self, validator):
        nodes = [
            make_node("t1", "test-trigger"),
            make_node("t2", "test-trigger"),
            make_node("a1", "test-action"),
            make_node("a2", "test-action"),
        ]
        report = validator.validate(nodes, chain("t1", "a1"))

        ids = issue_ids(report)
        assert "unreachable-a2" in ids
        assert "unreachable-t2" not in ids
        assert "unreachable-a1" not in ids

    def test_isolated_node_warning(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("a1", "test-action"), make_node("x", "test-action")]
        report = validator.validate(nodes, chain("t1", "a1"))

        isolated = [issue for issue in report.warnings if issue.id == "isolated-x"]
        assert len(isolated) == 1
        assert isolated[0].node_id == "x"

    def test_cycle_reported_once_with_path(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("a", "test-action"), make_node("b", "test-action")]
        edges = chain("t1", "a", "b") + [make_edge("b", "a")]
        report = validator.validate(nodes, edges)

        cycles = [issue for issue in report.errors if issue.id.startswith("cycle-")]
        assert len(cycles) == 1
        assert cycles[0].id == "cycle-a-b-a"
        assert cycles[0].category == IssueCategory.STRUCTURE
        assert cycles[0].severity == IssueSeverity.CRITICAL
        assert "a → b → a" in cycles[0].message

    def test_duplicate_node_ids(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("t1", "test-trigger")]
        report = validator.validate(nodes, [])

        assert "duplicate-node-t1" in issue_ids(report)
        assert not report.is_valid

    def test_validation_does_not_mutate_input(self, validator, email_to_trello):
        nodes, edges = email_to_trello
        before = [node.model_dump() for node in nodes], [edge.model_dump() for edge in edges]

        validator.validate(nodes, edges)

        assert ([node.model_dump() for node in nodes], [edge.model_dump() for edge in edges]) == before


class TestConfigurationChecks:
    """Test per-subtype configuration rules."""

    def test_email_trigger_without_filters_block(self, validator):
        report = validator.validate([make_node("t1", "email-trigger", {})], [])
        assert "email-config-t1" in [issue.id for issue in report.errors]

    def test_email_trigger_with_empty_filters(self, validator):
        report = validator.validate([make_node("t1", "email-trigger", {"emailFilters": {}})], [])

        assert "email-filters-t1" in [issue.id for issue in report.warnings]
        assert "email-config-t1" not in issue_ids(report)

    def test_email_trigger_with_many_keywords(self, validator):
        keywords = [f"k{i}" for i in range(11)]
        report = validator.validate([make_node("t1", "email-trigger", {"emailFilters": {"keywords": keywords}})], [])

        warning = next(issue for issue in report.warnings if issue.id == "too-many-keywords-t1")
        assert warning.severity == IssueSeverity.LOW

    def test_trello_missing_board_list_and_title(self, validator):
        report = validator.validate([make_node("a1", "trello-action", {"other": True})], [])

        error_ids = [issue.id for issue in report.errors]
        assert "trello-board-a1" in error_ids
        assert "trello-list-a1" in error_ids
        assert "trello-template-a1" in [issue.id for issue in report.warnings]

    def test_asana_rules(self, validator):
        report = validator.validate([make_node("a1", "asana-action", {"notes": "x"})], [])

        assert "asana-task-name-a1" in [issue.id for issue in report.errors]
        assert "asana-project-a1" in [issue.id for issue in report.warnings]

    def test_condition_without_conditions(self, validator):
        report = validator.validate([make_node("c1", "condition", {"conditions": []})], [])
        assert "condition-empty-c1" in [issue.id for issue in report.errors]

    def test_ai_classification_without_rules(self, validator):
        report = validator.validate([make_node("ai1", "ai-classification", {})], [])

        issue = next(issue for issue in report.warnings if issue.id == "ai-rules-ai1")
        assert issue.severity == IssueSeverity.MEDIUM

    def test_unknown_subtype_is_info(self, validator):
        report = validator.validate([make_node("x1", "mystery-widget")], [])

        unknown = [issue for issue in report.info if issue.id == "unknown-type-x1"]
        assert len(unknown) == 1
        assert unknown[0].category == IssueCategory.CONFIGURATION

    def test_wrong_config_type_becomes_issue(self, validator):
        node = make_node("t1", "email-trigger", {"emailFilters": {"keywords": 42}})
        report = validator.validate([node], [])

        assert "invalid-config-t1" in [issue.id for issue in report.errors]

    def test_custom_rule_registry(self):
        registry = ConfigRuleRegistry()

        def widget_rule(node, config):
            return [build_issue(
                f"widget-{node.id}", IssueType.WARNING, IssueCategory.CONFIGURATION,
                IssueSeverity.LOW, "Widget check", node_id=node.id,
            )]

        registry.register("widget", widget_rule)
        engine = ValidationEngine(rule_registry=registry)
        report = engine.validate([make_node("w1", "widget")], [])

        assert "widget-w1" in issue_ids(report)
        assert registry.has_rule("widget")
        assert not registry.has_rule("email-trigger")

    def test_default_registry_subtypes(self):
        registry = create_default_rule_registry()
        assert set(registry.list_subtypes()) == {
            "email-trigger", "trello-action", "asana-action", "condition", "ai-classification"
        }


class TestConnectionChecks:
    """Test edge checks."""

    def test_dangling_edge_is_critical(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("a1", "test-action")]
        edges = chain("t1", "a1") + [make_edge("a1", "ghost", "e-bad")]
        report = validator.validate(nodes, edges)

        issue = next(issue for issue in report.errors if issue.id == "invalid-connection-e-bad")
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.edge_id == "e-bad"

    def test_action_to_trigger(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("a1", "test-action"), make_node("t2", "test-trigger")]
        edges = chain("t1", "a1") + [make_edge("a1", "t2", "back")]
        report = validator.validate(nodes, edges)

        issue = next(issue for issue in report.errors if issue.id == "invalid-flow-back")
        assert issue.severity == IssueSeverity.HIGH

    def test_duplicate_connection(self, validator):
        nodes = [make_node("t1", "test-trigger"), make_node("a1", "test-action")]
        edges = [make_edge("t1", "a1", "e1"), make_edge("t1", "a1", "e2")]
        report = validator.validate(nodes, edges)

        assert "duplicate-connection-e2" in [issue.id for issue in report.errors]
        assert "duplicate-connection-e1" not in issue_ids(report)

    def test_trigger_fan_out_warned_once(self, validator):
        nodes = [make_node("t1", "test-trigger")] + [make_node(f"a{i}", "test-action") for i in range(4)]
        edges = [make_edge("t1", f"a{i}") for i in range(4)]
        report = validator.validate(nodes, edges)

        fan_out = [issue for issue in report.warnings if issue.id == "many-connections-t1"]
        assert len(fan_out) == 1
        assert fan_out[0].severity == IssueSeverity.LOW


class TestLogicAndPerformanceChecks:
    def test_condition_needs_two_branches(self, validator):
        nodes = [
            make_node("t1", "test-trigger"),
            make_node("c1", "condition", {"conditions": [{"field": "subject"}]}),
            make_node("a1", "test-action"),
        ]
        report = validator.validate(nodes, chain("t1", "c1", "a1"))

        assert "incomplete-condition-c1" in [issue.id for issue in report.warnings]

    def test_many_parallel_actions(self, validator):
        nodes = [make_node("t1", "test-trigger")] + [make_node(f"a{i}", "test-action") for i in range(6)]
        edges = [make_edge("t1", f"a{i}") for i in range(6)]
        report = validator.validate(nodes, edges)

        issue = next(issue for issue in report.warnings if issue.id == "many-parallel-t1")
        assert issue.severity == IssueSeverity.MEDIUM

    def test_complex_workflow(self, validator):
        ids = ["t1"] + [f"a{i}" for i in range(21)]
        nodes = [make_node("t1", "test-trigger")] + [make_node(node_id, "test-action") for node_id in ids[1:]]
        report = validator.validate(nodes, chain(*ids))

        assert "complex-workflow" in [issue.id for issue in report.warnings]


class TestScoring:
    """Test the quality score."""

    @staticmethod
    def _issue(issue_type, severity):
        return ValidationIssue(
            id="x", type=issue_type, category=IssueCategory.STRUCTURE, severity=severity, message="x"
        )

    def test_penalties(self):
        errors = [self._issue(IssueType.ERROR, IssueSeverity.CRITICAL), self._issue(IssueType.ERROR, IssueSeverity.LOW)]
        warnings = [self._issue(IssueType.WARNING, IssueSeverity.HIGH), self._issue(IssueType.WARNING, IssueSeverity.LOW)]

        assert calculate_quality_score(errors, warnings) == 100 - 25 - 5 - 10 - 2

    def test_score_clamped_and_monotonic(self):
        errors = []
        previous = calculate_quality_score(errors, [])
        for _ in range(10):
            errors.append(self._issue(IssueType.ERROR, IssueSeverity.HIGH))
            score = calculate_quality_score(errors, [])
            assert 0 <= score <= previous
            previous = score
        assert previous == 0

    def test_warnings_never_affect_validity(self, validator):
        report = validator.validate([make_node("t1", "email-trigger", {"emailFilters": {}})], [])

        assert report.warnings
        assert report.is_valid
        assert report.score < 100

    def test_summary(self, validator, email_to_trello):
        nodes, edges = email_to_trello
        assert get_validation_summary(validator.validate(nodes, edges)) == "Workflow is valid (Score: 100/100)"

        # no-triggers, unreachable, isolated, unknown type, dead end
        report = validator.validate([make_node("a1", "test-action")], [])
        assert get_validation_summary(report) == "2 errors, 1 warning, 2 info (Score: 55/100)"


class TestGraphHelpers:
    def test_find_cycles_multiple(self):
        nodes = [make_node(node_id, "test-action") for node_id in "abcd"]
        edges = [make_edge("a", "b"), make_edge("b", "a"), make_edge("c", "d"), make_edge("d", "c")]

        cycles = find_cycles(GraphModel(nodes=nodes, edges=edges))

        assert cycles == [["a", "b", "a"], ["c", "d", "c"]]

    def test_find_cycles_self_loop(self):
        graph = GraphModel(nodes=[make_node("a", "test-action")], edges=[make_edge("a", "a")])
        assert find_cycles(graph) == [["a", "a"]]

    def test_find_cycles_long_chain(self):
        ids = [f"n{i}" for i in range(3000)]
        graph = GraphModel(nodes=[make_node(node_id, "test-action") for node_id in ids], edges=chain(*ids))

        assert find_cycles(graph) == []

    def test_reachable(self):
        nodes = [make_node(node_id, "test-action") for node_id in "abc"]
        graph = GraphModel(nodes=nodes, edges=chain("a", "b"))

        assert find_reachable_nodes(graph, ["a"]) == {"a", "b"}

    def test_module_level_validate(self):
        report = validate_graph([make_node("t1", "test-trigger", label="Start")], [])
        assert report.is_valid
        assert report.issues_for_node("t1")

    def test_kind_inferred_from_subtype(self):
        assert make_node("x", "email-trigger").kind == NodeKind.TRIGGER
        assert make_node("x", "trello-action").kind == NodeKind.ACTION
        assert make_node("x", "condition").kind == NodeKind.LOGIC
        assert make_node("x", "ai-classification").kind == NodeKind.AI
