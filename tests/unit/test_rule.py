"""
Unit tests for rule expressions.

Tests cover:
- Canonical text representation
- Simplification (flattening, De Morgan, double negation)
- Simplified rules deciding like the originals for every truth assignment
- Combinators never mutating their operands
- Evaluation, cached evaluation and dependency tracking
- Cache-aware scoring
"""

import itertools

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tollgate.condition import Condition
from tollgate.policy import Policy
from tollgate.rule import (
    AbilityRef,
    And,
    ConditionRef,
    DelegatedConditionRef,
    Not,
    Or,
    all_of,
    any_of,
    as_rule,
    can,
    cond,
    delegated,
    none_of,
)


class TallyPolicy(Policy):
    """Conditions with fixed values that record when they are computed."""

    conditions = [
        Condition("yes", lambda p: p.record("yes", True), score=1),
        Condition("no", lambda p: p.record("no", False), score=2),
        Condition("also_yes", lambda p: p.record("also_yes", True), score=4),
    ]

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.evaluated: list[str] = []

    def record(self, name: str, value: bool) -> bool:
        self.evaluated.append(name)
        return value


@pytest.fixture
def context() -> TallyPolicy:
    return TallyPolicy(None, "subject")


a, b, c = cond("a"), cond("b"), cond("c")


class TestRepresentation:
    """Tests for the canonical text form."""

    def test_condition(self) -> None:
        assert cond("owns").repr() == "owns"

    def test_negation(self) -> None:
        assert (~cond("owns")).repr() == "~owns"

    def test_conjunction(self) -> None:
        assert all_of(a, b).repr() == "all?(a, b)"

    def test_disjunction(self) -> None:
        assert any_of(a, b, c).repr() == "any?(a, b, c)"

    def test_ability(self) -> None:
        assert can("drive_vehicle").repr() == "can?(:drive_vehicle)"

    def test_delegated_condition(self) -> None:
        assert delegated("registration", "valid").repr() == "registration.valid"

    def test_str_matches_repr(self) -> None:
        rule = a & ~b
        assert str(rule) == rule.repr() == "all?(a, ~b)"


class TestSimplify:
    """Tests for rule simplification."""

    def test_nested_and_is_flattened(self) -> None:
        assert (a & b) & c == And((a, b, c))
        assert a & (b & c) == And((a, b, c))

    def test_nested_or_is_flattened(self) -> None:
        assert (a | b) | c == Or((a, b, c))

    def test_mixed_nesting_is_kept(self) -> None:
        rule = (a | b) & c
        assert rule == And((Or((a, b)), c))

    def test_double_negation(self) -> None:
        assert ~~a == a

    def test_de_morgan_and(self) -> None:
        assert ~(a & b) == Or((Not(a), Not(b)))

    def test_de_morgan_or(self) -> None:
        assert ~(a | b) == And((Not(a), Not(b)))

    def test_de_morgan_removes_double_negation(self) -> None:
        assert ~(~a & b) == Or((a, Not(b)))

    def test_none_of(self) -> None:
        assert none_of(a, b) == And((Not(a), Not(b)))

    def test_simplify_leaves_leaves_alone(self) -> None:
        assert a.simplify() is a
        assert can("x").simplify() == AbilityRef("x")

    def test_duplicate_children_are_kept(self) -> None:
        assert all_of(a, a) == And((a, a))
        assert (a & b) & a == And((a, b, a))

    def test_simplify_is_idempotent(self) -> None:
        rule = ~((a | ~b) & ~(c & a))
        assert rule.simplify() == rule


class FactPolicy(Policy):
    """Conditions a, b and c read their values from a mapping subject."""

    conditions = [Condition(name, lambda p, name=name: p.subject[name]) for name in "abc"]


ASSIGNMENTS = [dict(zip("abc", values)) for values in itertools.product([True, False], repeat=3)]

NESTED_RULES = [
    Not(And((a, Or((b, Not(c)))))),
    Not(Not(Or((Not(a), And((b, c)))))),
    And((Or((a, Not(And((b, c))))), Not(Or((Not(a), c))))),
    Or((And((a, b)), And((Not(b), Or((c, Not(Not(a)))))))),
    Not(Or((And((Not(a), Not(b))), Not(c)))),
]


def decide(rule, facts: dict[str, bool]) -> bool:
    return rule.passes(FactPolicy(None, facts))


rule_trees = st.recursive(
    st.sampled_from([a, b, c]),
    lambda children: st.one_of(
        children.map(Not),
        st.lists(children, min_size=1, max_size=3).map(lambda rules: And(tuple(rules))),
        st.lists(children, min_size=1, max_size=3).map(lambda rules: Or(tuple(rules))),
    ),
    max_leaves=10,
)


class TestSimplifyPreservesMeaning:
    """Simplified rules decide exactly like the rules they came from."""

    @pytest.mark.parametrize("facts", ASSIGNMENTS)
    @pytest.mark.parametrize("rule", NESTED_RULES, ids=lambda rule: rule.repr())
    def test_nested_rules(self, rule, facts) -> None:
        assert decide(rule.simplify(), facts) == decide(rule, facts)

    @pytest.mark.parametrize("facts", ASSIGNMENTS)
    def test_de_morgan_and(self, facts) -> None:
        assert decide(Not(And((a, b))), facts) == decide(Or((Not(a), Not(b))), facts)
        assert decide(~(a & b), facts) == decide(~a | ~b, facts)

    @pytest.mark.parametrize("facts", ASSIGNMENTS)
    def test_de_morgan_or(self, facts) -> None:
        assert decide(Not(Or((a, b))), facts) == decide(And((Not(a), Not(b))), facts)
        assert decide(~(a | b), facts) == decide(~a & ~b, facts)

    @given(rule=rule_trees, values=st.tuples(st.booleans(), st.booleans(), st.booleans()))
    @settings(max_examples=200, deadline=None)
    def test_any_rule(self, rule, values) -> None:
        facts = dict(zip("abc", values))
        assert decide(rule.simplify(), facts) == decide(rule, facts)


class TestImmutability:
    """Combinators build new nodes and leave operands untouched."""

    def test_and_does_not_mutate(self) -> None:
        base = a & b
        extended = base & c
        assert base == And((a, b))
        assert extended == And((a, b, c))

    def test_or_does_not_mutate(self) -> None:
        base = a | b
        base | c
        assert base == Or((a, b))

    def test_rules_are_hashable(self) -> None:
        assert len({a & b, And((a, b)), a | b}) == 2


class TestAsRule:
    """Tests for coercion of declarations into rules."""

    def test_string_becomes_condition(self) -> None:
        assert as_rule("owns") == ConditionRef("owns")

    def test_rule_is_unchanged(self) -> None:
        rule = a & b
        assert as_rule(rule) is rule

    def test_other_values_are_rejected(self) -> None:
        with pytest.raises(TypeError):
            as_rule(42)


class TestEvaluation:
    """Tests for passes() and cached_pass()."""

    def test_condition(self, context: TallyPolicy) -> None:
        assert cond("yes").passes(context) is True
        assert cond("no").passes(context) is False

    def test_negation(self, context: TallyPolicy) -> None:
        assert (~cond("no")).passes(context) is True

    def test_and(self, context: TallyPolicy) -> None:
        assert all_of(cond("yes"), cond("also_yes")).passes(context) is True
        assert all_of(cond("yes"), cond("no")).passes(context) is False

    def test_or(self, context: TallyPolicy) -> None:
        assert any_of(cond("no"), cond("yes")).passes(context) is True
        assert any_of(cond("no"), ~cond("yes")).passes(context) is False

    def test_and_stops_at_first_false(self, context: TallyPolicy) -> None:
        all_of(cond("no"), cond("yes")).passes(context)
        assert context.evaluated == ["no"]

    def test_conditions_are_computed_once(self, context: TallyPolicy) -> None:
        cond("yes").passes(context)
        cond("yes").passes(context)
        (cond("yes") & cond("also_yes")).passes(context)
        assert context.evaluated == ["yes", "also_yes"]

    def test_cached_pass_unknown_before_evaluation(self, context: TallyPolicy) -> None:
        assert cond("yes").cached_pass(context) is None
        assert context.evaluated == []

    def test_cached_pass_after_evaluation(self, context: TallyPolicy) -> None:
        cond("no").passes(context)
        assert cond("no").cached_pass(context) is False
        assert (~cond("no")).cached_pass(context) is True

    def test_and_cached_false_wins_over_unknown(self, context: TallyPolicy) -> None:
        cond("no").passes(context)
        assert all_of(cond("yes"), cond("no")).cached_pass(context) is False

    def test_and_cached_unknown(self, context: TallyPolicy) -> None:
        cond("yes").passes(context)
        assert all_of(cond("yes"), cond("also_yes")).cached_pass(context) is None

    def test_or_cached_true_wins_over_unknown(self, context: TallyPolicy) -> None:
        cond("yes").passes(context)
        assert any_of(cond("no"), cond("yes")).cached_pass(context) is True

    def test_or_cached_all_false(self, context: TallyPolicy) -> None:
        cond("no").passes(context)
        cond("yes").passes(context)
        assert any_of(cond("no"), ~cond("yes")).cached_pass(context) is False

    def test_dependencies_are_collected(self, context: TallyPolicy) -> None:
        deps: set[str] = set()
        any_of(cond("no"), cond("yes")).passes(context, deps)
        assert len(deps) == 2
        assert all(key.startswith("/dp/condition/") for key in deps)
        assert any(key.endswith("/yes/<anonymous>,'subject'") for key in deps)

    def test_cached_hits_are_dependencies_too(self, context: TallyPolicy) -> None:
        cond("yes").passes(context)
        deps: set[str] = set()
        cond("yes").passes(context, deps)
        assert len(deps) == 1

    def test_ability_of_unconfigured_name_is_false(self, context: TallyPolicy) -> None:
        assert can("fly").passes(context) is False


class TestScore:
    """Tests for cost estimates."""

    def test_condition_score(self, context: TallyPolicy) -> None:
        assert cond("no").score(context) == 2

    def test_negation_has_inner_score(self, context: TallyPolicy) -> None:
        assert (~cond("no")).score(context) == 2

    def test_and_sums_children(self, context: TallyPolicy) -> None:
        assert all_of(cond("yes"), cond("no"), cond("also_yes")).score(context) == 7

    def test_cached_condition_is_free(self, context: TallyPolicy) -> None:
        cond("also_yes").passes(context)
        assert cond("also_yes").score(context) == 0
        assert any_of(cond("no"), cond("also_yes")).score(context) == 0
        assert all_of(cond("no"), cond("also_yes")).score(context) == 2

    def test_known_conjunction_is_free(self, context: TallyPolicy) -> None:
        cond("no").passes(context)
        assert all_of(cond("no"), cond("also_yes")).score(context) == 0


class TestDelegatedCondition:
    """Tests for conditions read from a delegate that is absent."""

    def test_absent_delegate_is_false_and_free(self, context: TallyPolicy) -> None:
        rule = DelegatedConditionRef("registration", "valid")
        assert rule.passes(context) is False
        assert rule.cached_pass(context) is False
        assert rule.score(context) == 0
