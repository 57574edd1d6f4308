"""
Tollgate - Declarative, cache-aware authorization decisions.

Tollgate answers "may this user perform this ability on this resource?"
from rules declared on policy types. It provides:
- Boolean rule expressions over named, scoped conditions
- Cost-ordered evaluation that stops as soon as the answer is settled
- Condition results shared across decisions through a caller-owned cache
- Policy composition by inheritance, delegation and overrides

Example usage:
    from tollgate import Condition, Policy, enable, policy_for

    class DocumentPolicy(Policy, subject=Document):
        conditions = [Condition("owns", lambda p: p.subject.owner is p.user)]
        rules = [enable("owns", "edit")]

    policy_for(user, document).allowed("edit")

    $ tollgate check policy.yaml edit --fact owns=true
"""

__version__ = "0.1.0"
__author__ = "Tollgate Contributors"

from tollgate.cache import invalidate
from tollgate.condition import Condition, ManifestCondition, preferred_scope
from tollgate.errors import (
    CircularDelegationError,
    ConditionNotFoundError,
    PolicyDocumentError,
    PolicyNotFoundError,
    RuleSyntaxError,
    TollgateError,
)
from tollgate.parser import parse_rule
from tollgate.policy import (
    GLOBAL,
    GlobalPolicy,
    NilPolicy,
    Policy,
    PolicyRegistry,
    build_policy,
    default_registry,
    delegate,
    enable,
    load_policy,
    policy_for,
    prevent,
    prevent_all,
    register_policy,
)
from tollgate.rule import Rule, all_of, any_of, can, cond, delegated, none_of
from tollgate.runner import Runner, Step
from tollgate.schema import Action, Scope, TraceEntry

__all__ = [
    "__version__",
    "__author__",
    # rules
    "Rule",
    "all_of",
    "any_of",
    "can",
    "cond",
    "delegated",
    "none_of",
    "parse_rule",
    # conditions and evaluation
    "Action",
    "Condition",
    "ManifestCondition",
    "Runner",
    "Scope",
    "Step",
    "TraceEntry",
    "invalidate",
    "preferred_scope",
    # policies
    "GLOBAL",
    "GlobalPolicy",
    "NilPolicy",
    "Policy",
    "PolicyRegistry",
    "build_policy",
    "default_registry",
    "delegate",
    "enable",
    "load_policy",
    "policy_for",
    "prevent",
    "prevent_all",
    "register_policy",
    # errors
    "CircularDelegationError",
    "ConditionNotFoundError",
    "PolicyDocumentError",
    "PolicyNotFoundError",
    "RuleSyntaxError",
    "TollgateError",
]
