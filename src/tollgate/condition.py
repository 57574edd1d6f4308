"""
Conditions and their per-decision manifestations.

A Condition is declared once on a policy type: a name, a cache scope, an
optional cost estimate and a callable that receives the decision context
(the Policy instance) and returns a truthy value.

A ManifestCondition pairs a Condition with one decision context. It memoizes
the result in the context's shared cache under a scope-aware key, so that
e.g. a user-scoped condition is computed once per principal no matter how
many resources are checked against the same cache.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator

from tollgate import cache
from tollgate.errors import InvalidScopeError
from tollgate.schema import Scope

if TYPE_CHECKING:
    from tollgate.policy.base import Policy


# Default scores by scope, used when a condition has no manual score.
SCORE_GLOBAL = 2
SCORE_PREFERRED = 4
SCORE_SCOPED = 8
SCORE_UNSCOPED = 16

_preferred_scope: ContextVar[Scope | None] = ContextVar("tollgate_preferred_scope", default=None)


@contextmanager
def preferred_scope(scope: Scope | str) -> Iterator[None]:
    """
    Score conditions of `scope` as cheaper while the block runs.

    Useful when checking many resources for one user (prefer USER) or many
    users for one resource (prefer SUBJECT): conditions of the preferred
    scope are shared across the whole batch, so running them first pays off.
    """
    token = _preferred_scope.set(Scope(scope))
    try:
        yield
    finally:
        _preferred_scope.reset(token)


def get_preferred_scope() -> Scope | None:
    return _preferred_scope.get()


@dataclass(frozen=True)
class Condition:
    """
    A named, scoped, cost-estimated predicate over a decision context.

    Attributes:
        name: Name referenced from rules
        evaluator: Callable receiving the Policy instance
        scope: Breadth of cache sharing
        score: Manual cost estimate; None uses the scope default
        description: Optional human-readable description
        owner: The declaring policy type (set on declaration)
    """

    name: str
    evaluator: Callable[[Any], Any]
    scope: Scope = Scope.NONE
    score: float | None = None
    description: str | None = None
    owner: type | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "scope", Scope(self.scope))
        except ValueError:
            raise InvalidScopeError(scope=str(self.scope)) from None

    def compute(self, context: Policy) -> bool:
        return bool(self.evaluator(context))

    @property
    def key(self) -> str:
        """Declaration identity: the owning type plus the condition name."""
        if self.owner is None:
            return self.name
        return f"{cache.type_key(self.owner)}/{self.name}"


class ManifestCondition:
    """A Condition bound to one decision context."""

    def __init__(self, condition: Condition, context: Policy) -> None:
        self.condition = condition
        self.context = context
        self._cache_key: str | None = None

    def passes(self, deps: set[str] | None = None) -> bool:
        """
        Return the condition's value, computing and storing it if needed.

        Presence in the cache is what counts: a cached False is a hit.
        Concurrent writers for the same key compute the same value, so the
        first stored value is kept.
        """
        key = self.cache_key
        if deps is not None:
            deps.add(key)

        store = self.context.cache
        if key in store:
            return store[key]

        return store.setdefault(key, self.condition.compute(self.context))

    @property
    def cached(self) -> bool:
        return self.cache_key in self.context.cache

    @property
    def score(self) -> float:
        if self.cached:
            return 0

        condition = self.condition
        if condition.score is not None:
            return condition.score
        if condition.scope is Scope.GLOBAL:
            return SCORE_GLOBAL
        if condition.scope is get_preferred_scope():
            return SCORE_PREFERRED
        if condition.scope in (Scope.USER, Scope.SUBJECT):
            return SCORE_SCOPED
        return SCORE_UNSCOPED

    @property
    def cache_key(self) -> str:
        if self._cache_key is None:
            self._cache_key = self._build_cache_key()
        return self._cache_key

    def _build_cache_key(self) -> str:
        base = f"{cache.CONDITION_PREFIX}/{self.condition.key}"
        scope = self.condition.scope
        user = cache.user_key(self.context.user)
        subject = cache.subject_key(self.context.subject)

        if scope is Scope.GLOBAL:
            return base
        if scope is Scope.USER:
            return f"{base}/{user}"
        if scope is Scope.SUBJECT:
            return f"{base}/{subject}"
        return f"{base}/{user},{subject}"

    def __repr__(self) -> str:
        return f"<ManifestCondition {self.cache_key}>"
