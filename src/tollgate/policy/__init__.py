"""
Policy types, composition and resolution.

A policy type declares conditions and rules for one kind of resource and
is instantiated per (user, subject) decision. Types are composed three
ways:

    - inheritance: a subclass adds to its parent's rules, never replaces them
    - delegation: the rules of another resource's policy are merged in
    - overrides: named abilities are kept out of delegate merging

Example:
    from tollgate.policy import Policy, enable, prevent, policy_for

    class VehiclePolicy(Policy, subject=Vehicle):
        conditions = [...]
        rules = [enable("owns", "drive_vehicle")]

    policy_for(user, car).allowed("drive_vehicle")
"""

from tollgate.policy.base import GlobalPolicy, NilPolicy, Policy
from tollgate.policy.config import (
    Declaration,
    Delegation,
    PolicyConfiguration,
    delegate,
    enable,
    prevent,
    prevent_all,
)
from tollgate.policy.loader import build_policy, load_policy
from tollgate.policy.registry import (
    GLOBAL,
    PolicyRegistry,
    default_registry,
    find_delegate,
    policy_for,
    register_policy,
)

__all__ = [
    "GLOBAL",
    "Declaration",
    "Delegation",
    "GlobalPolicy",
    "NilPolicy",
    "Policy",
    "PolicyConfiguration",
    "PolicyRegistry",
    "build_policy",
    "default_registry",
    "delegate",
    "enable",
    "find_delegate",
    "load_policy",
    "policy_for",
    "prevent",
    "prevent_all",
    "register_policy",
]
