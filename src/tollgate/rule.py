"""
Rule expressions for Tollgate.

A rule is an immutable boolean formula over named conditions, other
abilities and conditions of delegated policies. Rules know how to:

    - evaluate themselves against a decision context (`passes`)
    - report a result using only memoized sub-results (`cached_pass`)
    - estimate the cost of evaluating them (`score`)
    - rewrite themselves into an equivalent, flatter form (`simplify`)

Rules are built with the helpers at the bottom of this module and combined
with the `&`, `|` and `~` operators, which never mutate their operands:

    from tollgate.rule import can, cond

    rule = (cond("owns") | cond("has_access_to")) & ~can("suspended")

The `deps` argument threaded through evaluation is a mutable set of cache
keys; every condition consulted while producing an answer is added to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from tollgate.policy.base import Policy


class Rule:
    """Base class for all rule expressions."""

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        raise NotImplementedError

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        """
        Return the rule's value if it is already known, else None.

        Never triggers evaluation of a condition or ability.
        """
        raise NotImplementedError

    def score(self, context: Policy) -> float:
        return 0

    def simplify(self) -> Rule:
        return self

    def repr(self) -> str:
        raise NotImplementedError

    # Combinators. Each builds a new, simplified node.

    def and_(self, other: Rule) -> Rule:
        return And((self, other)).simplify()

    def or_(self, other: Rule) -> Rule:
        return Or((self, other)).simplify()

    def negate(self) -> Rule:
        return Not(self).simplify()

    def __and__(self, other: Rule) -> Rule:
        return self.and_(other)

    def __or__(self, other: Rule) -> Rule:
        return self.or_(other)

    def __invert__(self) -> Rule:
        return self.negate()

    def __str__(self) -> str:
        return self.repr()


@dataclass(frozen=True)
class ConditionRef(Rule):
    """A reference to a condition declared on the context's policy."""

    name: str

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        return context.condition(self.name).passes(deps)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        condition = context.condition(self.name)
        if not condition.cached:
            return None
        return condition.passes(deps)

    def score(self, context: Policy) -> float:
        return context.condition(self.name).score

    def repr(self) -> str:
        return self.name


@dataclass(frozen=True)
class DelegatedConditionRef(Rule):
    """
    A reference to a condition of a named delegate's policy.

    When the delegate resolves to nothing the rule is false and free.
    """

    delegate: str
    name: str

    def _delegated_context(self, context: Policy) -> Policy | None:
        return context.delegated_policies.get(self.delegate)

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        delegate = self._delegated_context(context)
        if delegate is None:
            return False
        return delegate.condition(self.name).passes(deps)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        delegate = self._delegated_context(context)
        if delegate is None:
            return False
        condition = delegate.condition(self.name)
        if not condition.cached:
            return None
        return condition.passes(deps)

    def score(self, context: Policy) -> float:
        delegate = self._delegated_context(context)
        if delegate is None:
            return 0
        return delegate.condition(self.name).score

    def repr(self) -> str:
        return f"{self.delegate}.{self.name}"


@dataclass(frozen=True)
class AbilityRef(Rule):
    """The outcome of another ability on the same context."""

    ability: str

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        return context.runner(self.ability).passes(deps)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        runner = context.runner(self.ability)
        if not runner.cached:
            return None
        return runner.passes(deps)

    def score(self, context: Policy) -> float:
        return context.runner(self.ability).score

    def repr(self) -> str:
        return f"can?(:{self.ability})"


@dataclass(frozen=True)
class Not(Rule):
    """Negation of a rule."""

    rule: Rule

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        return not self.rule.passes(context, deps)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        inner = self.rule.cached_pass(context, deps)
        if inner is None:
            return None
        return not inner

    def score(self, context: Policy) -> float:
        return self.rule.score(context)

    def simplify(self) -> Rule:
        rule = self.rule
        if isinstance(rule, And):
            return Or(tuple(Not(r) for r in rule.rules)).simplify()
        if isinstance(rule, Or):
            return And(tuple(Not(r) for r in rule.rules)).simplify()
        if isinstance(rule, Not):
            return rule.rule.simplify()
        return Not(rule.simplify())

    def repr(self) -> str:
        return f"~{self.rule.repr()}"


@dataclass(frozen=True)
class And(Rule):
    """Conjunction: passes when every child passes."""

    rules: tuple[Rule, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        cached = self.cached_pass(context, deps)
        if cached is not None:
            return cached
        return all(rule.passes(context, deps) for rule in self.rules)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        unknown = False
        for rule in self.rules:
            value = rule.cached_pass(context, deps)
            if value is False:
                return False
            if value is None:
                unknown = True
        return None if unknown else True

    def score(self, context: Policy) -> float:
        if self.cached_pass(context) is not None:
            return 0
        # cached children score 0 on their own
        return sum(rule.score(context) for rule in self.rules)

    def simplify(self) -> Rule:
        return And(tuple(_flatten(And, self.rules)))

    def repr(self) -> str:
        return f"all?({', '.join(rule.repr() for rule in self.rules)})"


@dataclass(frozen=True)
class Or(Rule):
    """Disjunction: passes when any child passes."""

    rules: tuple[Rule, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    def passes(self, context: Policy, deps: set[str] | None = None) -> bool:
        cached = self.cached_pass(context, deps)
        if cached is not None:
            return cached
        return any(rule.passes(context, deps) for rule in self.rules)

    def cached_pass(self, context: Policy, deps: set[str] | None = None) -> bool | None:
        values = [rule.cached_pass(context, deps) for rule in self.rules]
        if any(value is True for value in values):
            return True
        if all(value is False for value in values):
            return False
        return None

    def score(self, context: Policy) -> float:
        if self.cached_pass(context) is not None:
            return 0
        return sum(rule.score(context) for rule in self.rules)

    def simplify(self) -> Rule:
        return Or(tuple(_flatten(Or, self.rules)))

    def repr(self) -> str:
        return f"any?({', '.join(rule.repr() for rule in self.rules)})"


def _flatten(node_type: type, rules: Iterable[Rule]) -> list[Rule]:
    """Simplify each rule, splicing in children of nested nodes of the same type."""
    flattened: list[Rule] = []
    for rule in rules:
        simplified = rule.simplify()
        if isinstance(simplified, node_type):
            flattened.extend(simplified.rules)
        else:
            flattened.append(simplified)
    return flattened


# =============================================================================
# Construction Helpers
# =============================================================================


def cond(name: str) -> Rule:
    """Reference a condition by name."""
    return ConditionRef(name)


def can(ability: str) -> Rule:
    """Reference the outcome of another ability."""
    return AbilityRef(ability)


def delegated(delegate: str, name: str) -> Rule:
    """Reference condition `name` on the delegate called `delegate`."""
    return DelegatedConditionRef(delegate, name)


def all_of(*rules: Rule) -> Rule:
    return And(rules).simplify()


def any_of(*rules: Rule) -> Rule:
    return Or(rules).simplify()


def none_of(*rules: Rule) -> Rule:
    return Not(Or(rules)).simplify()


def as_rule(value: Any) -> Rule:
    """Coerce a condition name into a ConditionRef, leaving rules untouched."""
    if isinstance(value, Rule):
        return value
    if isinstance(value, str):
        return ConditionRef(value)
    msg = f"Cannot build a rule from {value!r}"
    raise TypeError(msg)
