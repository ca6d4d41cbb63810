"""Typed per-subtype node configuration.

Node configuration travels as a plain mapping on ``Node.config``. These
models give each known subtype a typed view of that mapping. Every field
is optional so that an incomplete node still parses; deciding whether a
missing field is an error belongs to the validation rules and executors.
Both the snake_case names and the camelCase keys written by the editor are
accepted.
"""

from typing import Any, Dict, List, Optional, Type
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .core import Node


class _NodeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class EmailFilters(_NodeConfig):
    sender: Optional[str] = None
    subject: Optional[str] = None
    keywords: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return not (self.sender or self.subject or self.keywords)


class EmailTriggerConfig(_NodeConfig):
    email_filters: Optional[EmailFilters] = Field(
        None, validation_alias=AliasChoices("email_filters", "emailFilters")
    )
    max_results: int = Field(10, validation_alias=AliasChoices("max_results", "maxResults"))


class CardTemplate(_NodeConfig):
    title: Optional[str] = None
    description: Optional[str] = None


class TrelloActionConfig(_NodeConfig):
    board_id: Optional[str] = Field(None, validation_alias=AliasChoices("board_id", "boardId", "board"))
    list_id: Optional[str] = Field(None, validation_alias=AliasChoices("list_id", "listId", "list"))
    card_template: Optional[CardTemplate] = Field(
        None, validation_alias=AliasChoices("card_template", "cardTemplate")
    )

    @model_validator(mode='before')
    @classmethod
    def fold_flat_card_fields(cls, data):
        """Accept ``cardTitle``/``cardDescription`` as a flat card template."""
        if isinstance(data, dict) and ("cardTitle" in data or "cardDescription" in data):
            data = dict(data)
            template = dict(data.get("cardTemplate") or data.get("card_template") or {})
            template.setdefault("title", data.pop("cardTitle", None))
            template.setdefault("description", data.pop("cardDescription", None))
            data.pop("card_template", None)
            data["cardTemplate"] = template
        return data


class AsanaActionConfig(_NodeConfig):
    task_name: Optional[str] = Field(None, validation_alias=AliasChoices("task_name", "taskName"))
    project_id: Optional[str] = Field(None, validation_alias=AliasChoices("project_id", "projectId"))
    workspace_id: Optional[str] = Field(None, validation_alias=AliasChoices("workspace_id", "workspaceId"))
    notes: Optional[str] = None


class ConditionConfig(_NodeConfig):
    conditions: List[Any] = Field(default_factory=list)


class AIClassificationConfig(_NodeConfig):
    classification_rules: List[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("classification_rules", "classificationRules"),
    )


CONFIG_MODELS: Dict[str, Type[_NodeConfig]] = {
    "email-trigger": EmailTriggerConfig,
    "trello-action": TrelloActionConfig,
    "asana-action": AsanaActionConfig,
    "condition": ConditionConfig,
    "ai-classification": AIClassificationConfig,
}


def parse_node_config(node: Node) -> Optional[_NodeConfig]:
    """Return the typed configuration for ``node``.

    Returns None for subtypes without a typed model. Raises
    ``pydantic.ValidationError`` when a known field has the wrong type.
    """
    model = CONFIG_MODELS.get(node.subtype)
    if model is None:
        return None
    return model.model_validate(node.config or {})
