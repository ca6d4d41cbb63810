"""Per-subtype configuration rules used by the validation engine.

Each rule receives the node and its parsed configuration model and returns
the issues it found. Rules are looked up by subtype in a
``ConfigRuleRegistry``; subtypes without a rule fall through to a default
rule emitting a single info issue.
"""

from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models.core import (
    Node, ValidationIssue, IssueType, IssueCategory, IssueSeverity
)
from ..models.node_config import (
    parse_node_config,
    EmailTriggerConfig,
    TrelloActionConfig,
    AsanaActionConfig,
    ConditionConfig,
    AIClassificationConfig,
)
from .logging import get_logger


logger = get_logger(__name__)

MAX_EMAIL_KEYWORDS = 10

ConfigRule = Callable[[Node, object], List[ValidationIssue]]


def build_issue(
    issue_id: str,
    issue_type: IssueType,
    category: IssueCategory,
    severity: IssueSeverity,
    message: str,
    node_id: Optional[str] = None,
    edge_id: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> ValidationIssue:
    return ValidationIssue(
        id=issue_id,
        type=issue_type,
        category=category,
        severity=severity,
        message=message,
        node_id=node_id,
        edge_id=edge_id,
        suggestion=suggestion,
    )


def _config_issue(node: Node, prefix: str, issue_type: IssueType, severity: IssueSeverity,
                  message: str, suggestion: str) -> ValidationIssue:
    return build_issue(
        f"{prefix}-{node.id}", issue_type, IssueCategory.CONFIGURATION, severity,
        message, node_id=node.id, suggestion=suggestion,
    )


def email_trigger_rule(node: Node, config: EmailTriggerConfig) -> List[ValidationIssue]:
    if config.email_filters is None:
        return [_config_issue(
            node, "email-config", IssueType.ERROR, IssueSeverity.HIGH,
            f'Email trigger "{node.display_name}" is not configured',
            "Configure email filters (subject, sender, or keywords)",
        )]

    issues = []
    filters = config.email_filters
    if filters.is_empty():
        issues.append(_config_issue(
            node, "email-filters", IssueType.WARNING, IssueSeverity.MEDIUM,
            f'Email trigger "{node.display_name}" has no filters configured',
            "Add at least one filter to avoid processing all emails",
        ))
    if filters.keywords and len(filters.keywords) > MAX_EMAIL_KEYWORDS:
        issues.append(_config_issue(
            node, "too-many-keywords", IssueType.WARNING, IssueSeverity.LOW,
            f'Email trigger "{node.display_name}" has too many keywords',
            "Consider reducing keywords for better performance",
        ))
    return issues


def trello_action_rule(node: Node, config: TrelloActionConfig) -> List[ValidationIssue]:
    issues = []
    if not config.board_id:
        issues.append(_config_issue(
            node, "trello-board", IssueType.ERROR, IssueSeverity.HIGH,
            f'Trello action "{node.display_name}" has no board selected',
            "Select a Trello board for card creation",
        ))
    if not config.list_id:
        issues.append(_config_issue(
            node, "trello-list", IssueType.ERROR, IssueSeverity.HIGH,
            f'Trello action "{node.display_name}" has no list selected',
            "Select a list within the Trello board",
        ))
    if config.card_template is None or not config.card_template.title:
        issues.append(_config_issue(
            node, "trello-template", IssueType.WARNING, IssueSeverity.MEDIUM,
            f'Trello action "{node.display_name}" has no card title template',
            "Configure a title template for created cards",
        ))
    return issues


def asana_action_rule(node: Node, config: AsanaActionConfig) -> List[ValidationIssue]:
    issues = []
    if not config.task_name:
        issues.append(_config_issue(
            node, "asana-task-name", IssueType.ERROR, IssueSeverity.HIGH,
            f'Asana action "{node.display_name}" has no task name template',
            "Configure a task name template for created tasks",
        ))
    if not config.project_id:
        issues.append(_config_issue(
            node, "asana-project", IssueType.WARNING, IssueSeverity.LOW,
            f'Asana action "{node.display_name}" has no project selected',
            "Select a project, or tasks will be created in the default workspace",
        ))
    return issues


def condition_rule(node: Node, config: ConditionConfig) -> List[ValidationIssue]:
    if config.conditions:
        return []
    return [_config_issue(
        node, "condition-empty", IssueType.ERROR, IssueSeverity.HIGH,
        f'Condition node "{node.display_name}" has no conditions configured',
        "Add at least one condition to evaluate",
    )]


def ai_classification_rule(node: Node, config: AIClassificationConfig) -> List[ValidationIssue]:
    if config.classification_rules:
        return []
    return [_config_issue(
        node, "ai-rules", IssueType.WARNING, IssueSeverity.MEDIUM,
        f'AI classification "{node.display_name}" has no rules configured',
        "Configure classification rules for better accuracy",
    )]


def unknown_subtype_rule(node: Node, config: object) -> List[ValidationIssue]:
    return [build_issue(
        f"unknown-type-{node.id}", IssueType.INFO, IssueCategory.CONFIGURATION, IssueSeverity.LOW,
        f"Unknown node type: {node.subtype}", node_id=node.id,
    )]


class ConfigRuleRegistry:
    """Maps node subtypes to configuration rules."""

    def __init__(self, default_rule: ConfigRule = unknown_subtype_rule):
        self._rules: Dict[str, ConfigRule] = {}
        self._default_rule = default_rule

    def register(self, subtype: str, rule: ConfigRule) -> None:
        if not subtype or not subtype.strip():
            raise ValueError("Rule subtype cannot be empty")
        self._rules[subtype] = rule
        logger.debug(f"Registered configuration rule for subtype '{subtype}'")

    def get_rule(self, subtype: str) -> ConfigRule:
        return self._rules.get(subtype, self._default_rule)

    def has_rule(self, subtype: str) -> bool:
        return subtype in self._rules

    def list_subtypes(self) -> List[str]:
        return list(self._rules.keys())

    def check(self, node: Node) -> List[ValidationIssue]:
        """Run the rule for ``node``'s subtype. Never raises for bad configuration."""
        try:
            config = parse_node_config(node)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            location = ".".join(str(part) for part in first.get("loc", ())) or "config"
            return [_config_issue(
                node, "invalid-config", IssueType.ERROR, IssueSeverity.HIGH,
                f'Node "{node.display_name}" has an invalid configuration value for {location}',
                first.get("msg", "Fix the configuration value types"),
            )]
        return list(self.get_rule(node.subtype)(node, config))


def create_default_rule_registry() -> ConfigRuleRegistry:
    """Registry with the rules for every built-in subtype."""
    registry = ConfigRuleRegistry()
    registry.register("email-trigger", email_trigger_rule)
    registry.register("trello-action", trello_action_rule)
    registry.register("asana-action", asana_action_rule)
    registry.register("condition", condition_rule)
    registry.register("ai-classification", ai_classification_rule)
    return registry
