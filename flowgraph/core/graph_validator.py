"""
Validation engine for workflow graphs.

The engine runs structural, configuration, connection, logic and
performance checks over a graph snapshot and returns a scored
``ValidationReport``. It never raises for malformed input: dangling edges,
duplicate pairs and cycles are reported as issues.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models.core import (
    Node, Edge, GraphModel, NodeKind,
    ValidationIssue, ValidationReport,
    IssueType, IssueCategory, IssueSeverity,
)
from .config_rules import ConfigRuleRegistry, build_issue, create_default_rule_registry
from .logging import get_logger


logger = get_logger(__name__)

MAX_TRIGGER_CONNECTIONS = 3
MAX_PARALLEL_ACTIONS = 5
COMPLEX_WORKFLOW_NODES = 20

ERROR_PENALTIES = {
    IssueSeverity.CRITICAL: 25,
    IssueSeverity.HIGH: 15,
    IssueSeverity.MEDIUM: 10,
    IssueSeverity.LOW: 5,
}

WARNING_PENALTIES = {
    IssueSeverity.CRITICAL: 15,
    IssueSeverity.HIGH: 10,
    IssueSeverity.MEDIUM: 5,
    IssueSeverity.LOW: 2,
}


def calculate_quality_score(errors: Iterable[ValidationIssue], warnings: Iterable[ValidationIssue]) -> int:
    """Start at 100, subtract per issue by severity and clamp to [0, 100]."""
    score = 100
    for issue in errors:
        score -= ERROR_PENALTIES[issue.severity]
    for issue in warnings:
        score -= WARNING_PENALTIES[issue.severity]
    return max(0, min(100, score))


def find_reachable_nodes(graph: GraphModel, start_ids: Iterable[str]) -> Set[str]:
    """Find all nodes reachable by forward edges from ``start_ids``."""
    adjacency = graph.adjacency()
    queue = [node_id for node_id in start_ids if node_id in adjacency]
    reachable = set(queue)

    while queue:
        current = queue.pop(0)
        for neighbor in adjacency[current]:
            if neighbor not in reachable:
                reachable.add(neighbor)
                queue.append(neighbor)

    return reachable


def _canonical_cycle(loop: List[str]) -> Tuple[str, ...]:
    pivot = loop.index(min(loop))
    return tuple(loop[pivot:] + loop[:pivot])


def find_cycles(graph: GraphModel) -> List[List[str]]:
    """
    Find the distinct cycles of the graph using DFS with a recursion stack.

    Each cycle is reported as the node path from its first node back to
    that node, e.g. ``["a", "b", "a"]``. The walk is iterative so deep
    chains do not hit the interpreter recursion limit.
    """
    adjacency = graph.adjacency()
    visited: Set[str] = set()
    on_stack: Set[str] = set()
    seen: Set[Tuple[str, ...]] = set()
    cycles: List[List[str]] = []

    for root in adjacency:
        if root in visited:
            continue

        path = [root]
        visited.add(root)
        on_stack.add(root)
        stack = [(root, iter(adjacency[root]))]

        while stack:
            node_id, successors = stack[-1]
            descended = False

            for neighbor in successors:
                if neighbor in on_stack:
                    loop = path[path.index(neighbor):]
                    key = _canonical_cycle(loop)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(loop + [neighbor])
                elif neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    path.append(neighbor)
                    stack.append((neighbor, iter(adjacency[neighbor])))
                    descended = True
                    break

            if not descended:
                stack.pop()
                on_stack.discard(node_id)
                path.pop()

    return cycles


class ValidationEngine:
    """Runs the full battery of checks over a graph snapshot."""

    def __init__(self, rule_registry: Optional[ConfigRuleRegistry] = None):
        self.rule_registry = rule_registry or create_default_rule_registry()

    def validate(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> ValidationReport:
        """Validate ``nodes`` and ``edges`` without mutating them."""
        return self.validate_graph(GraphModel.of(nodes, edges))

    def validate_graph(self, graph: GraphModel) -> ValidationReport:
        issues: List[ValidationIssue] = []

        if not graph.nodes:
            issues.append(build_issue(
                "empty-workflow", IssueType.WARNING, IssueCategory.STRUCTURE, IssueSeverity.MEDIUM,
                "Workflow is empty",
                suggestion="Add at least one trigger node to start building your workflow",
            ))
            return self._build_report(issues)

        self._check_structure(graph, issues)
        self._check_configuration(graph, issues)
        self._check_connections(graph, issues)
        self._check_logic(graph, issues)
        self._check_performance(graph, issues)

        report = self._build_report(issues)
        logger.debug(
            f"Validated graph with {len(graph.nodes)} nodes and {len(graph.edges)} edges: "
            f"{get_validation_summary(report)}"
        )
        return report

    def check_node(self, node: Node) -> List[ValidationIssue]:
        """Configuration issues for a single node."""
        return self.rule_registry.check(node)

    def _build_report(self, issues: List[ValidationIssue]) -> ValidationReport:
        errors = [issue for issue in issues if issue.type == IssueType.ERROR]
        warnings = [issue for issue in issues if issue.type == IssueType.WARNING]
        info = [issue for issue in issues if issue.type == IssueType.INFO]
        return ValidationReport(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            info=info,
            score=calculate_quality_score(errors, warnings),
        )

    def _check_structure(self, graph: GraphModel, issues: List[ValidationIssue]) -> None:
        seen_ids: Set[str] = set()
        for node in graph.nodes:
            if node.id in seen_ids:
                issues.append(build_issue(
                    f"duplicate-node-{node.id}", IssueType.ERROR, IssueCategory.STRUCTURE, IssueSeverity.HIGH,
                    f'Node ID "{node.id}" is used more than once', node_id=node.id,
                    suggestion="Give every node a unique ID",
                ))
            seen_ids.add(node.id)

        triggers = graph.nodes_of_kind(NodeKind.TRIGGER)
        if not triggers:
            issues.append(build_issue(
                "no-triggers", IssueType.ERROR, IssueCategory.STRUCTURE, IssueSeverity.CRITICAL,
                "Workflow must have at least one trigger node",
                suggestion="Add an email trigger or other trigger node to start your workflow",
            ))

        if not graph.nodes_of_kind(NodeKind.ACTION):
            issues.append(build_issue(
                "no-actions", IssueType.WARNING, IssueCategory.STRUCTURE, IssueSeverity.HIGH,
                "Workflow has no action nodes",
                suggestion="Add action nodes to perform tasks when the workflow is triggered",
            ))

        connected = {edge.source for edge in graph.edges} | {edge.target for edge in graph.edges}
        for node in graph.nodes:
            if node.id not in connected:
                issues.append(build_issue(
                    f"isolated-{node.id}", IssueType.WARNING, IssueCategory.STRUCTURE, IssueSeverity.MEDIUM,
                    f'Node "{node.display_name}" is not connected to any other nodes', node_id=node.id,
                    suggestion="Connect this node to other nodes or remove it if not needed",
                ))

        reachable = find_reachable_nodes(graph, [trigger.id for trigger in triggers])
        for node in graph.nodes:
            if node.kind != NodeKind.TRIGGER and node.id not in reachable:
                issues.append(build_issue(
                    f"unreachable-{node.id}", IssueType.ERROR, IssueCategory.STRUCTURE, IssueSeverity.HIGH,
                    f'Node "{node.display_name}" is not reachable from any trigger', node_id=node.id,
                    suggestion="Connect this node to a path that starts from a trigger node",
                ))

        for cycle in find_cycles(graph):
            issues.append(build_issue(
                f"cycle-{'-'.join(cycle)}", IssueType.ERROR, IssueCategory.STRUCTURE, IssueSeverity.CRITICAL,
                f"Circular dependency detected: {' → '.join(cycle)}",
                node_id=cycle[0],
                suggestion="Remove connections that create circular dependencies",
            ))

    def _check_configuration(self, graph: GraphModel, issues: List[ValidationIssue]) -> None:
        for node in graph.nodes:
            issues.extend(self.rule_registry.check(node))

    def _check_connections(self, graph: GraphModel, issues: List[ValidationIssue]) -> None:
        node_map = graph.node_map()
        seen_pairs: Set[Tuple[str, str]] = set()
        fan_out: Dict[str, int] = {}

        for edge in graph.edges:
            source = node_map.get(edge.source)
            target = node_map.get(edge.target)

            if source is None or target is None:
                issues.append(build_issue(
                    f"invalid-connection-{edge.id}", IssueType.ERROR, IssueCategory.CONNECTION,
                    IssueSeverity.CRITICAL,
                    "Connection references non-existent nodes", edge_id=edge.id,
                    suggestion="Remove invalid connections",
                ))
                continue

            if source.kind == NodeKind.ACTION and target.kind == NodeKind.TRIGGER:
                issues.append(build_issue(
                    f"invalid-flow-{edge.id}", IssueType.ERROR, IssueCategory.CONNECTION, IssueSeverity.HIGH,
                    "Actions cannot connect to triggers", edge_id=edge.id,
                    suggestion="Connect triggers to actions, not the reverse",
                ))

            pair = (edge.source, edge.target)
            if pair in seen_pairs:
                issues.append(build_issue(
                    f"duplicate-connection-{edge.id}", IssueType.ERROR, IssueCategory.CONNECTION,
                    IssueSeverity.HIGH,
                    f'Duplicate connection from "{source.display_name}" to "{target.display_name}"',
                    edge_id=edge.id,
                    suggestion="Remove the repeated connection",
                ))
            seen_pairs.add(pair)

            if source.kind == NodeKind.TRIGGER:
                fan_out[source.id] = fan_out.get(source.id, 0) + 1

        for trigger_id, count in fan_out.items():
            if count > MAX_TRIGGER_CONNECTIONS:
                node = node_map[trigger_id]
                issues.append(build_issue(
                    f"many-connections-{node.id}", IssueType.WARNING, IssueCategory.CONNECTION,
                    IssueSeverity.LOW,
                    f'Trigger "{node.display_name}" has many outgoing connections', node_id=node.id,
                    suggestion="Consider using condition nodes to organize complex flows",
                ))

    def _check_logic(self, graph: GraphModel, issues: List[ValidationIssue]) -> None:
        sources = {edge.source for edge in graph.edges}

        for node in graph.nodes_of_kind(NodeKind.ACTION):
            if node.id not in sources:
                issues.append(build_issue(
                    f"dead-end-{node.id}", IssueType.INFO, IssueCategory.LOGIC, IssueSeverity.LOW,
                    f'Action "{node.display_name}" has no follow-up actions', node_id=node.id,
                    suggestion="This is fine if this action completes your workflow",
                ))

        for node in graph.nodes_of_kind(NodeKind.LOGIC):
            if len(graph.outgoing(node.id)) < 2:
                issues.append(build_issue(
                    f"incomplete-condition-{node.id}", IssueType.WARNING, IssueCategory.LOGIC,
                    IssueSeverity.MEDIUM,
                    f'Condition "{node.display_name}" should have both true and false branches',
                    node_id=node.id,
                    suggestion="Add connections for both condition outcomes",
                ))

    def _check_performance(self, graph: GraphModel, issues: List[ValidationIssue]) -> None:
        if len(graph.nodes) > COMPLEX_WORKFLOW_NODES:
            issues.append(build_issue(
                "complex-workflow", IssueType.WARNING, IssueCategory.STRUCTURE, IssueSeverity.LOW,
                "Workflow is quite complex with many nodes",
                suggestion="Consider breaking into smaller workflows for better maintainability",
            ))

        node_map = graph.node_map()
        for trigger in graph.nodes_of_kind(NodeKind.TRIGGER):
            direct_actions = [
                edge for edge in graph.outgoing(trigger.id)
                if edge.target in node_map and node_map[edge.target].kind == NodeKind.ACTION
            ]
            if len(direct_actions) > MAX_PARALLEL_ACTIONS:
                issues.append(build_issue(
                    f"many-parallel-{trigger.id}", IssueType.WARNING, IssueCategory.LOGIC, IssueSeverity.MEDIUM,
                    f'Trigger "{trigger.display_name}" has many parallel actions', node_id=trigger.id,
                    suggestion="Consider using condition nodes to sequence actions",
                ))


def validate_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> ValidationReport:
    """Validate with the default rule registry."""
    return ValidationEngine().validate(nodes, edges)


def get_validation_summary(report: ValidationReport) -> str:
    """One-line human readable summary of a report."""
    if not report.errors and not report.warnings:
        return f"Workflow is valid (Score: {report.score}/100)"

    parts = []
    if report.errors:
        parts.append(f"{len(report.errors)} error{'s' if len(report.errors) > 1 else ''}")
    if report.warnings:
        parts.append(f"{len(report.warnings)} warning{'s' if len(report.warnings) > 1 else ''}")
    if report.info:
        parts.append(f"{len(report.info)} info")

    return f"{', '.join(parts)} (Score: {report.score}/100)"
