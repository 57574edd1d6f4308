"""
Configuration records for policy types.

A policy type declares its conditions, rules, delegations and overrides as
plain class attributes. When the class is created these declarations are
compiled into a PolicyConfiguration and merged with the parent type's
configuration, once, so no lookup ever walks the class hierarchy again.

Merge rules (parent first, then child):
    - abilities: step lists are concatenated, never replaced
    - conditions: a child condition replaces a parent's of the same name
    - global prevents: concatenated
    - delegations: a child delegation replaces a parent's of the same name
    - overrides: union
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping

from tollgate.condition import Condition
from tollgate.rule import Rule, as_rule
from tollgate.schema import Action

Resolver = Callable[[Any], Any]


@dataclass(frozen=True)
class Declaration:
    """
    One rule declaration: `rule` enables or prevents `abilities`.

    A declaration with `everything=True` is a global prevent, applied to
    every ability of the policy.
    """

    rule: Rule
    action: Action
    abilities: tuple[str, ...] = ()
    everything: bool = False


@dataclass(frozen=True)
class Delegation:
    """A named function from a decision context to a delegate resource (or None)."""

    name: str | None
    resolver: Resolver


def enable(rule: Rule | str, *abilities: str) -> Declaration:
    """Enable each of `abilities` when `rule` passes."""
    return Declaration(as_rule(rule), Action.ENABLE, tuple(abilities))


def prevent(rule: Rule | str, *abilities: str) -> Declaration:
    """Prevent each of `abilities` when `rule` passes."""
    return Declaration(as_rule(rule), Action.PREVENT, tuple(abilities))


def prevent_all(rule: Rule | str) -> Declaration:
    """Prevent every ability of the policy when `rule` passes."""
    return Declaration(as_rule(rule), Action.PREVENT, everything=True)


def delegate(name: str | None = None, resolver: Resolver | None = None) -> Delegation:
    """
    Declare a delegation.

    Without a resolver the delegate is the attribute `name` of the subject.
    Without a name the delegation is given a generated one.
    """
    if resolver is None:
        if name is None:
            msg = "A delegation needs a name or a resolver"
            raise ValueError(msg)
        attribute = name

        def resolver(policy: Any) -> Any:
            return getattr(policy.subject, attribute, None)

    return Delegation(name, resolver)


ActionList = tuple[tuple[Action, Rule], ...]


@dataclass(frozen=True)
class PolicyConfiguration:
    """The effective, fully merged configuration of one policy type."""

    abilities: Mapping[str, ActionList] = field(default_factory=dict)
    conditions: Mapping[str, Condition] = field(default_factory=dict)
    global_actions: ActionList = ()
    delegations: Mapping[str, Resolver] = field(default_factory=dict)
    overrides: frozenset[str] = frozenset()

    def merge(self, other: PolicyConfiguration) -> PolicyConfiguration:
        """Return a configuration with `other` layered on top of this one."""
        abilities = dict(self.abilities)
        for ability, actions in other.abilities.items():
            abilities[ability] = abilities.get(ability, ()) + actions

        return PolicyConfiguration(
            abilities=abilities,
            conditions={**self.conditions, **other.conditions},
            global_actions=self.global_actions + other.global_actions,
            delegations={**self.delegations, **other.delegations},
            overrides=self.overrides | other.overrides,
        )

    def actions_for(self, ability: str) -> ActionList:
        """All (action, rule) pairs for an ability, global prevents last."""
        return self.abilities.get(ability, ()) + self.global_actions

    @property
    def ability_names(self) -> list[str]:
        return sorted(self.abilities)

    @classmethod
    def build(
        cls,
        owner: type,
        conditions: Iterable[Condition] = (),
        rules: Iterable[Declaration] = (),
        delegations: Iterable[Delegation] | Mapping[str, Resolver] = (),
        overrides: Iterable[str] = (),
    ) -> PolicyConfiguration:
        """
        Compile one type's own declarations.

        Args:
            owner: The declaring type, stamped on its conditions
        """
        own_conditions: dict[str, Condition] = {}
        for condition in conditions:
            own_conditions[condition.name] = _with_owner(condition, owner)

        abilities: dict[str, ActionList] = {}
        global_actions: list[tuple[Action, Rule]] = []
        for declaration in rules:
            if declaration.everything:
                global_actions.append((declaration.action, declaration.rule))
                continue
            for ability in declaration.abilities:
                abilities[ability] = abilities.get(ability, ()) + ((declaration.action, declaration.rule),)

        if isinstance(delegations, Mapping):
            delegations = [Delegation(name, resolver) for name, resolver in delegations.items()]

        own_delegations: dict[str, Resolver] = {}
        anonymous = 0
        for delegation in delegations:
            name = delegation.name
            if name is None:
                anonymous += 1
                name = f"anonymous_{anonymous}@{owner.__qualname__}"
            own_delegations[name] = delegation.resolver

        if isinstance(overrides, str):
            overrides = (overrides,)

        return cls(
            abilities=abilities,
            conditions=own_conditions,
            global_actions=tuple(global_actions),
            delegations=own_delegations,
            overrides=frozenset(overrides),
        )


def _with_owner(condition: Condition, owner: type) -> Condition:
    if condition.owner is not None:
        return condition
    return replace(condition, owner=owner)
