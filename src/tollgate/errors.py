"""
Exception hierarchy for Tollgate.

All Tollgate exceptions inherit from TollgateError, allowing callers to catch
all Tollgate-specific exceptions with a single except clause.

Exception Categories:
    - ConfigurationError: A policy type is declared or referenced incorrectly
    - DelegationError: Delegations form a cycle
    - RegistryError: No policy type can be found for a resource
    - DocumentError: A YAML policy document or rule text is malformed

Exceptions raised from inside a condition body are never wrapped: they
propagate to the caller unchanged.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Configuration errors: 1xxx
ERROR_CONDITION_NOT_FOUND = 1001
ERROR_INVALID_ACTION = 1002
ERROR_INVALID_SCOPE = 1003

# Delegation errors: 2xxx
ERROR_CIRCULAR_DELEGATION = 2001

# Registry errors: 3xxx
ERROR_POLICY_NOT_FOUND = 3001

# Document errors: 4xxx
ERROR_RULE_SYNTAX = 4001
ERROR_POLICY_DOCUMENT = 4002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class TollgateError(Exception):
    """
    Base exception for all Tollgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigurationError(TollgateError):
    """
    Raised when a policy type is configured incorrectly.

    Attributes:
        policy: Name of the policy type involved
    """

    policy: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["policy"] = self.policy


@dataclass
class ConditionNotFoundError(ConfigurationError):
    """
    Raised when a rule references a condition the policy never declared.

    This is raised at evaluation time. An undeclared condition is never
    silently treated as false.
    """

    condition: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid condition {self.condition!r} for {self.policy}"
        if self.code == 0:
            self.code = ERROR_CONDITION_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Declare the condition on the policy or one of its parents"
        super().__post_init__()
        self.context["condition"] = self.condition


@dataclass
class InvalidActionError(ConfigurationError):
    """Raised when a step carries an action other than enable or prevent."""

    action: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid action {self.action!r}"
        if self.code == 0:
            self.code = ERROR_INVALID_ACTION
        super().__post_init__()
        self.context["action"] = self.action


@dataclass
class InvalidScopeError(ConfigurationError):
    """Raised when a condition declares an unknown cache scope."""

    scope: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid scope {self.scope!r}"
        if self.code == 0:
            self.code = ERROR_INVALID_SCOPE
        if not self.suggestion:
            self.suggestion = "Use one of: user, subject, global, none"
        super().__post_init__()
        self.context["scope"] = self.scope


# =============================================================================
# Delegation Errors
# =============================================================================


@dataclass
class CircularDelegationError(TollgateError):
    """
    Raised when a delegation chain returns to an already-visited resource.

    Attributes:
        chain: Human-readable description of the visited path
    """

    chain: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Circular delegations: " + " -> ".join(self.chain)
        if self.code == 0:
            self.code = ERROR_CIRCULAR_DELEGATION
        self.context["chain"] = self.chain


# =============================================================================
# Registry Errors
# =============================================================================


@dataclass
class PolicyNotFoundError(TollgateError):
    """Raised when no policy type is registered for a resource's type."""

    resource_type: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"No policy for {self.resource_type}"
        if self.code == 0:
            self.code = ERROR_POLICY_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Register a policy for the type or one of its base classes"
        self.context["resource_type"] = self.resource_type


# =============================================================================
# Document Errors
# =============================================================================


@dataclass
class RuleSyntaxError(TollgateError):
    """
    Raised when rule text cannot be parsed.

    Attributes:
        text: The rule text being parsed
        position: Offset into the text where parsing failed
    """

    text: str = ""
    position: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid rule at offset {self.position}: {self.text!r}"
        if self.code == 0:
            self.code = ERROR_RULE_SYNTAX
        self.context.update({
            "text": self.text,
            "position": self.position,
        })


@dataclass
class PolicyDocumentError(TollgateError):
    """Raised when a YAML policy document fails validation."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid policy document: {self.path}"
        if self.code == 0:
            self.code = ERROR_POLICY_DOCUMENT
        self.context["path"] = self.path
