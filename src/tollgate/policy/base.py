"""
Policy: the decision context for one (user, subject) pair.

A policy type is a subclass of Policy that declares its configuration as
class attributes:

    class VehiclePolicy(Policy, subject=Vehicle):
        conditions = [
            Condition("owns", lambda p: p.subject.owner is p.user, score=0),
            Condition("intoxicated", lambda p: p.user.blood_alcohol > 0.01, score=5),
        ]
        rules = [
            enable("owns", "drive_vehicle", "sell_vehicle"),
            prevent("intoxicated", "drive_vehicle"),
        ]
        delegations = [delegate("registration")]
        overrides = {"sell_vehicle"}

An instance of the type is a decision context: it holds the user, the
subject and a cache mapping (which may be shared with other contexts), and
memoizes its ManifestConditions, Runners and delegate contexts.

Instances are not safe for concurrent use from several threads. Contexts
that only share the cache mapping are.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Iterable, Mapping, MutableMapping

from tollgate.condition import Condition, ManifestCondition
from tollgate.errors import CircularDelegationError, ConditionNotFoundError
from tollgate.policy.config import Declaration, Delegation, PolicyConfiguration, Resolver, prevent_all
from tollgate.rule import cond
from tollgate.runner import Runner, Step
from tollgate.schema import Action, Scope, TraceEntry

logger = logging.getLogger(__name__)

_SELF = object()


class Policy:
    """
    Base class for all policy types.

    Class attributes (each optional, each merged with the parent's):
        conditions: Condition declarations
        rules: enable/prevent/prevent_all declarations
        delegations: delegate(...) declarations, or a name -> resolver mapping
        overrides: abilities that are never read from delegates

    Class keyword arguments:
        subject: resource type(s) this policy governs, registered in `registry`
    """

    conditions: ClassVar[Iterable[Condition]] = ()
    rules: ClassVar[Iterable[Declaration]] = ()
    delegations: ClassVar[Iterable[Delegation] | Mapping[str, Resolver]] = ()
    overrides: ClassVar[Iterable[str]] = ()

    registry: ClassVar[Any] = None

    _configuration: ClassVar[PolicyConfiguration]

    def __init_subclass__(cls, subject: type | tuple[type, ...] | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        inherited = PolicyConfiguration()
        for base in cls.__bases__:
            if isinstance(base, type) and issubclass(base, Policy):
                inherited = inherited.merge(base._configuration)

        own = PolicyConfiguration.build(
            cls,
            conditions=cls.__dict__.get("conditions", ()),
            rules=cls.__dict__.get("rules", ()),
            delegations=cls.__dict__.get("delegations", ()),
            overrides=cls.__dict__.get("overrides", ()),
        )
        cls._configuration = inherited.merge(own)

        if subject is not None:
            from tollgate.policy.registry import default_registry

            registry = cls.registry if cls.registry is not None else default_registry
            for resource_type in subject if isinstance(subject, tuple) else (subject,):
                registry.register(resource_type, cls)

    @classmethod
    def configuration(cls) -> PolicyConfiguration:
        """The effective configuration of this type, parents included."""
        return cls._configuration

    def __init__(
        self,
        user: Any,
        subject: Any,
        cache: MutableMapping[str, Any] | None = None,
    ) -> None:
        self.user = user
        self.subject = subject
        self.cache: MutableMapping[str, Any] = cache if cache is not None else {}
        self._conditions: dict[str, ManifestCondition] = {}
        self._runners: dict[str, Runner] = {}
        self._composing: set[str] = set()
        self._delegated_policies: dict[str, Policy | None] | None = None

    @property
    def principal(self) -> Any:
        return self.user

    @property
    def resource(self) -> Any:
        return self.subject

    # =========================================================================
    # Decisions
    # =========================================================================

    def allowed(self, *abilities: str) -> bool:
        """True when every one of `abilities` is allowed."""
        return all(self.runner(ability).passes() for ability in abilities)

    def disallowed(self, *abilities: str) -> bool:
        """True when every one of `abilities` is denied."""
        return all(not self.runner(ability).passes() for ability in abilities)

    def can(self, ability: str, subject: Any = _SELF) -> bool:
        """Check an ability on this subject, or on another subject for the same user."""
        if subject is _SELF:
            return self.allowed(ability)
        return self.policy_for(subject).allowed(ability)

    def debug(self, ability: str) -> list[TraceEntry]:
        """Evaluate `ability` again and return the ordered trace of its steps."""
        return self.runner(ability).trace()

    def dependencies(self, ability: str) -> set[str]:
        """Cache keys the (already evaluated) decision for `ability` depends on."""
        return self.runner(ability).dependencies

    def banned(self) -> bool:
        """
        True when a global prevent rule passes.

        Ability-specific rules are ignored.
        """
        steps = [Step(self, cond("default"), Action.ENABLE)]
        steps.extend(
            Step(self, rule, action)
            for action, rule in self.configuration().global_actions
        )
        return not Runner(steps, ability="<banned>").passes()

    def uncache(self, *abilities: str) -> None:
        """
        Forget resolved decisions so they are recomputed.

        Pair this with `tollgate.cache.invalidate` for the relevant keys.
        With no arguments every runner of this context, and of the delegate
        contexts resolved so far, is reset.
        """
        if abilities:
            for name in abilities:
                runner = self._runners.get(name)
                if runner is not None:
                    runner.uncache()
            return

        pending: list[Policy] = [self]
        seen: set[int] = set()
        while pending:
            context = pending.pop()
            if id(context) in seen:
                continue
            seen.add(id(context))
            for runner in context._runners.values():
                runner.uncache()
            if context._delegated_policies:
                pending.extend(d for d in context._delegated_policies.values() if d is not None)

    # =========================================================================
    # Composition
    # =========================================================================

    def runner(self, ability: str) -> Runner:
        """
        The memoized Runner deciding `ability` in this context.

        Own steps come first (inherited rules, then this type's, then global
        prevents). Unless the ability is overridden, the steps of every
        present delegate's runner for the same ability are appended.
        """
        runner = self._runners.get(ability)
        if runner is not None:
            return runner

        if ability in self._composing:
            raise CircularDelegationError(chain=[f"{self.repr()} can?(:{ability})"])

        self._composing.add(ability)
        try:
            runner = Runner(self._own_steps(ability), ability)
            if ability not in self.configuration().overrides:
                for delegate in self.delegated_policies.values():
                    if delegate is None:
                        continue
                    runner = runner.merge(delegate.runner(ability))
        except CircularDelegationError as e:
            e.chain.insert(0, f"{self.repr()} can?(:{ability})")
            e.message = "Circular delegations: " + " -> ".join(e.chain)
            raise
        finally:
            self._composing.discard(ability)

        self._runners[ability] = runner
        return runner

    def condition(self, name: str) -> ManifestCondition:
        """The memoized ManifestCondition for condition `name`."""
        manifest = self._conditions.get(name)
        if manifest is None:
            condition = self.configuration().conditions.get(name)
            if condition is None:
                raise ConditionNotFoundError(policy=type(self).__name__, condition=name)
            manifest = ManifestCondition(condition, self)
            self._conditions[name] = manifest
        return manifest

    @property
    def delegated_policies(self) -> dict[str, Policy | None]:
        """
        Delegate contexts by delegation name, resolved once.

        A resolver returning None yields None here: such a delegate
        contributes no steps and its conditions read as false.
        """
        if self._delegated_policies is None:
            resolved: dict[str, Policy | None] = {}
            for name, resolver in self.configuration().delegations.items():
                delegate_subject = resolver(self)
                if delegate_subject is None:
                    logger.debug("Delegate %s of %s is absent", name, self.repr())
                    resolved[name] = None
                    continue
                resolved[name] = self.policy_for(delegate_subject)
            self._delegated_policies = resolved
        return self._delegated_policies

    def policy_for(self, subject: Any) -> Policy:
        """A decision context for the same user and cache, on another subject."""
        from tollgate.policy.registry import default_registry

        registry = type(self).registry
        if registry is None:
            registry = default_registry
        return registry.policy_for(self.user, subject, cache=self.cache)

    def _own_steps(self, ability: str) -> list[Step]:
        return [
            Step(self, rule, action)
            for action, rule in self.configuration().actions_for(ability)
        ]

    # =========================================================================
    # Representation
    # =========================================================================

    def repr(self) -> str:
        return f"({self.identify_user()} : {self.identify_subject()})"

    def identify_user(self) -> str:
        if self.user is None:
            return "<anonymous>"
        identifier = getattr(self.user, "id", None)
        if identifier is None:
            return f"<{type(self.user).__name__}: {id(self.user)}>"
        return str(identifier)

    def identify_subject(self) -> str:
        identifier = getattr(self.subject, "id", None)
        if identifier is not None:
            return f"{type(self.subject).__name__}/{identifier}"
        return repr(self.subject)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.repr()}>"


Policy._configuration = PolicyConfiguration.build(
    Policy,
    conditions=[
        Condition("anonymous", lambda p: p.user is None, scope=Scope.USER, score=0,
                  description="Unknown user"),
        Condition("default", lambda p: True, scope=Scope.GLOBAL, score=0,
                  description="By default"),
    ],
)


class NilPolicy(Policy):
    """Policy for an absent subject: nothing is ever allowed."""

    rules = [prevent_all("default")]


class GlobalPolicy(Policy):
    """Policy for abilities that do not concern a particular subject."""


__all__ = [
    "GlobalPolicy",
    "NilPolicy",
    "Policy",
]
