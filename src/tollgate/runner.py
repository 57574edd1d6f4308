"""
Runner: the cost-ordered evaluator for one ability decision.

A Runner holds the Steps that bear on one ability of one decision context
and decides the ability with the semantic "at least one enable and no
prevent". Steps are executed cheapest-first, where cost is each rule's
cache-aware score. Because executing one step can put shared conditions in
the cache, scores are recomputed before every selection.

Lifecycle:
    Unevaluated -> Running -> Resolved(enabled, prevented, dependencies)

A Running Runner that is asked for its answer again, as when an ability
refers to itself through `can?`, answers from its partial state instead of
starting over. Self and mutual references therefore resolve without error.

A resolved Runner keeps its answer until `uncache()` is called. The set of
cache keys consulted while resolving (including those consulted by nested
ability Runners) is kept as `dependencies`, the unit of external
invalidation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterator

from tollgate.errors import InvalidActionError
from tollgate.rule import AbilityRef, Or, Rule
from tollgate.schema import Action, TraceEntry

if TYPE_CHECKING:
    from tollgate.policy.base import Policy

logger = logging.getLogger(__name__)

# Above this many steps, re-scoring on every iteration costs more than it saves.
MAX_ADAPTIVE_STEPS = 50

# Prevent steps are slightly preferred since one success settles the decision.
PREVENT_SCORE_FACTOR = 7.0 / 8


@dataclass(frozen=True, eq=False)
class Step:
    """
    A (rule, action) pair contributing to one ability of one context.

    Two steps are equal when they share the context (by identity), the rule
    (structurally) and the action, which lets flattening drop duplicates.
    """

    context: Policy
    rule: Rule
    action: Action

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "action", Action(self.action))
        except ValueError:
            raise InvalidActionError(action=str(self.action)) from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Step):
            return NotImplemented
        return (
            self.context is other.context
            and self.rule == other.rule
            and self.action is other.action
        )

    def __hash__(self) -> int:
        return hash((id(self.context), self.rule, self.action))

    @property
    def enable(self) -> bool:
        return self.action is Action.ENABLE

    @property
    def prevent(self) -> bool:
        return self.action is Action.PREVENT

    @property
    def score(self) -> float:
        score = self.rule.score(self.context)
        if self.prevent:
            return score * PREVENT_SCORE_FACTOR
        return score

    def passes(self, deps: set[str] | None = None) -> bool:
        return self.rule.passes(self.context, deps)

    def with_action(self, action: Action) -> Step:
        return replace(self, action=action)

    def flatten(self, roots: list[Step]) -> list[Step]:
        """
        Split this step into independently schedulable steps.

        An `any?` rule is the same as one step per alternative. A `can?` rule
        whose ability has only enable steps is inlined one level: the ability
        is allowed exactly when one of those steps passes. Steps already in
        `roots` are not inlined again. Inlined steps become prevents when this
        step is a prevent; as prevents they never duplicate a root step.
        """
        rule = self.rule
        if isinstance(rule, Or):
            return [
                flat
                for alternative in rule.rules
                for flat in Step(self.context, alternative, self.action).flatten(roots)
            ]

        if isinstance(rule, AbilityRef):
            referenced = self.context.runner(rule.ability).steps
            steps = [s for s in referenced if s not in roots]
            if all(s.enable for s in steps):
                if self.prevent:
                    return [s.with_action(Action.PREVENT) for s in referenced if s.enable]
                return steps

        return [self]

    def repr(self) -> str:
        return f"{self.action.value} {self.rule.repr()}"

    def __repr__(self) -> str:
        return f"<Step {self.repr()} {self.context.repr()}>"


@dataclass
class State:
    """Outcome of one Runner evaluation."""

    enabled: bool = False
    prevented: bool = False
    dependencies: set[str] = field(default_factory=set)

    @property
    def passed(self) -> bool:
        return self.enabled and not self.prevented


class Runner:
    """
    Evaluates an ordered bag of Steps into a single allow/deny answer.

    Usage:
        runner = Runner(steps)
        runner.passes()        # evaluates once, then reuses the state
        runner.dependencies    # cache keys the answer depends on
        runner.uncache()       # forget the answer, e.g. after invalidation
    """

    def __init__(self, steps: list[Step], ability: str | None = None) -> None:
        self.steps = list(steps)
        self.ability = ability
        self._state: State | None = None
        self._running = False

    @property
    def cached(self) -> bool:
        return self._state is not None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def score(self) -> float:
        if self.cached or self.running:
            return 0
        return sum(step.score for step in self.steps)

    @property
    def dependencies(self) -> set[str]:
        if self._state is None:
            return set()
        return set(self._state.dependencies)

    def merge(self, other: Runner) -> Runner:
        return Runner(self.steps + other.steps, self.ability)

    def uncache(self) -> None:
        """Discard the resolved state so the next call re-evaluates."""
        self._state = None

    def passes(self, deps: set[str] | None = None) -> bool:
        """
        Decide the ability, evaluating at most once.

        Asked again while it is still running (an ability reaching itself
        through `can?`), the Runner answers from its partial state, which is
        not enabled unless an enable step has already passed.

        Args:
            deps: Caller's accumulator; this Runner's dependencies are added to it
        """
        if self._state is None:
            self._run()

        if deps is not None:
            deps.update(self._state.dependencies)

        return self._state.passed

    def trace(self) -> list[TraceEntry]:
        """
        Re-evaluate and report every step with its score and outcome.

        Steps that could no longer change the answer are listed as not executed.
        """
        entries: list[TraceEntry] = []
        self._run(entries)
        return entries

    def _run(self, trace: list[TraceEntry] | None = None) -> State:
        state = State()
        debugging = trace is not None
        # visible to re-entrant callers before any step runs
        self._state = state
        self._running = True
        try:
            for step, score in self._steps_by_score(state, debugging):
                if not debugging and state.prevented:
                    break

                passed: bool | None = None
                if step.enable:
                    # only worth running if nothing has settled the answer yet
                    if not (state.enabled or state.prevented):
                        passed = step.passes(state.dependencies)
                        if passed:
                            state.enabled = True
                else:
                    if not state.prevented:
                        passed = step.passes(state.dependencies)
                        if passed:
                            state.prevented = True

                if trace is not None:
                    trace.append(TraceEntry(
                        action=step.action,
                        rule=step.rule.repr(),
                        score=score,
                        passed=passed,
                        context=step.context.repr(),
                    ))
        except Exception:
            # a failed evaluation leaves nothing to reuse
            self._state = None
            raise
        finally:
            self._running = False

        logger.debug(
            "Resolved %s: enabled=%s prevented=%s (%d dependencies)",
            self._describe(),
            state.enabled,
            state.prevented,
            len(state.dependencies),
        )
        return state

    def _flattened_steps(self) -> list[Step]:
        flattened: list[Step] = []
        for step in self.steps:
            flattened.extend(step.flatten(self.steps))
        # equal steps may come out of different branches; keep the first
        return list(dict.fromkeys(flattened))

    def _steps_by_score(self, state: State, debugging: bool) -> Iterator[tuple[Step, float]]:
        """
        Yield (step, score) pairs, cheapest first.

        The consumer updates `state` between yields; this generator reads it
        to restrict or stop the remaining work.
        """
        steps = self._flattened_steps()

        if len(steps) > MAX_ADAPTIVE_STEPS:
            logger.warning(
                "Large number of steps (%d) for %s, falling back to static sort",
                len(steps),
                self._describe(),
            )
            scored = sorted(((step.score, i, step) for i, step in enumerate(steps)), key=lambda t: (t[0], t[1]))
            for score, _, step in scored:
                yield step, score
            return

        remaining = list(steps)
        enablers = [s for s in steps if s.enable]
        preventers = [s for s in steps if s.prevent]

        while True:
            if state.enabled:
                # a single prevent overturns an enable, so only prevents matter now
                remaining = preventers
            elif not enablers:
                # nothing left that could enable: settled as denied
                state.prevented = True
                if not debugging:
                    return

            if not remaining:
                return

            step, score = self._next_step(remaining)
            for bucket in (remaining, enablers, preventers):
                if step in bucket:
                    bucket.remove(step)

            yield step, score

    @staticmethod
    def _next_step(remaining: list[Step]) -> tuple[Step, float]:
        lowest_score = float("inf")
        next_step = remaining[0]

        for step in remaining:
            score = step.score
            if score < lowest_score:
                next_step = step
                lowest_score = score
            if lowest_score == 0:
                break

        return next_step, lowest_score

    def _describe(self) -> str:
        if self.ability is not None:
            return self.ability
        return ", ".join(step.repr() for step in self.steps[:3]) or "<no steps>"

    def __repr__(self) -> str:
        status = "resolved" if self.cached else "unevaluated"
        return f"<Runner {self.ability} {len(self.steps)} steps, {status}>"
