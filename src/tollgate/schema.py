"""
Schema definitions for Tollgate.

This module defines the enums and Pydantic models shared across Tollgate:
- Scope/Action: How conditions are cached and what a step does
- TraceEntry: One line of a debug trace produced by a Runner
- PolicyDocument and friends: The YAML form of a policy type

Design Decisions:
    - Document models use strict validation (extra="forbid")
    - Models are immutable (frozen=True)
    - Rule expressions inside documents are kept as canonical text and
      parsed when the document is compiled into a policy type
"""

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================


class Scope(str, Enum):
    """
    Breadth of cache sharing for a condition.

    USER conditions depend only on the principal, SUBJECT only on the
    resource, GLOBAL on neither. NONE ties the result to the exact
    principal/resource pair.
    """

    USER = "user"
    SUBJECT = "subject"
    GLOBAL = "global"
    NONE = "none"


class Action(str, Enum):
    """What a step does to an ability when its rule passes."""

    ENABLE = "enable"
    PREVENT = "prevent"


# =============================================================================
# Runtime Models
# =============================================================================


class TraceEntry(BaseModel):
    """
    One executed (or skipped) step of a debug run.

    Attributes:
        action: Whether the step enables or prevents
        rule: Canonical text of the step's rule
        score: The score the step was selected at
        passed: True/False if the step ran, None if it was not executed
        context: Representation of the decision context the step belongs to
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Action = Field(..., description="Step action")
    rule: str = Field(..., description="Canonical rule text")
    score: float = Field(..., description="Score at selection time", ge=0)
    passed: bool | None = Field(default=None, description="Outcome, None if skipped")
    context: str = Field(default="", description="Decision context representation")

    @property
    def symbol(self) -> str:
        """'+' for passed, '-' for failed, ' ' for not executed."""
        if self.passed is None:
            return " "
        return "+" if self.passed else "-"

    def __str__(self) -> str:
        return f"{self.symbol} [{int(self.score)}] {self.action.value} {self.rule}"


# =============================================================================
# Policy Document Models
# =============================================================================


class ConditionSpec(BaseModel):
    """
    A condition declared in a policy document.

    Document conditions read their value from the facts supplied as the
    decision's resource; `default` is used when a fact is missing.

    Attributes:
        name: Condition name referenced from rules
        scope: Cache scope
        score: Manual cost estimate (None uses the scope default)
        description: Optional human-readable description
        default: Value used when the fact is not supplied
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Condition name")
    scope: Scope = Field(default=Scope.NONE, description="Cache scope")
    score: float | None = Field(default=None, ge=0, description="Manual score")
    description: str | None = Field(default=None, description="Description")
    default: bool = Field(default=False, description="Value when the fact is missing")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Condition names must be identifiers."""
        if not v.isidentifier():
            msg = f"Invalid condition name: {v}"
            raise ValueError(msg)
        return v


class RuleSpec(BaseModel):
    """
    A rule declared in a policy document.

    Attributes:
        when: Rule expression in canonical text form
        enable: Abilities enabled when the rule passes
        prevent: Abilities prevented when the rule passes
        prevent_all: Whether the rule prevents every ability
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    when: str = Field(..., min_length=1, description="Rule expression")
    enable: list[str] = Field(default_factory=list, description="Enabled abilities")
    prevent: list[str] = Field(default_factory=list, description="Prevented abilities")
    prevent_all: bool = Field(default=False, description="Prevent every ability")

    @model_validator(mode="after")
    def validate_targets(self) -> "RuleSpec":
        """A rule must affect at least one ability."""
        if not (self.enable or self.prevent or self.prevent_all):
            msg = f"Rule {self.when!r} has no enable, prevent or prevent_all target"
            raise ValueError(msg)
        return self


class PolicyDocument(BaseModel):
    """
    Complete YAML policy document.

    Attributes:
        name: Name of the compiled policy type
        conditions: Declared conditions
        rules: Ordered rule declarations
        overrides: Abilities excluded from delegate merging
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="DocumentPolicy", description="Policy type name")
    conditions: list[ConditionSpec] = Field(default_factory=list)
    rules: list[RuleSpec] = Field(default_factory=list)
    overrides: list[str] = Field(default_factory=list)

    @field_validator("conditions")
    @classmethod
    def validate_unique_conditions(cls, v: list[ConditionSpec]) -> list[ConditionSpec]:
        """Condition names must be unique within a document."""
        seen: set[str] = set()
        for spec in v:
            if spec.name in seen:
                msg = f"Duplicate condition: {spec.name}"
                raise ValueError(msg)
            seen.add(spec.name)
        return v


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_policy_document(path: Path | str) -> PolicyDocument:
    """
    Load a policy document from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return PolicyDocument.model_validate(data or {})


def load_policy_document_from_string(content: str) -> PolicyDocument:
    """Load a policy document from a YAML string."""
    data = yaml.safe_load(content)
    return PolicyDocument.model_validate(data or {})
