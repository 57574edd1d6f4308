"""
Compile YAML policy documents into policy types.

A document declares conditions and rules but cannot carry code, so each
document condition reads its value from a mapping of facts supplied as the
decision's subject:

    policy_type = build_policy(load_policy_document("vehicle.yaml"))
    policy = policy_type(user, {"owns": True, "intoxicated": False})
    policy.allowed("drive_vehicle")

This makes documents useful for what-if evaluation and for exercising rule
sets without their production condition bodies.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from tollgate.condition import Condition
from tollgate.errors import PolicyDocumentError, RuleSyntaxError
from tollgate.parser import parse_rule
from tollgate.policy.base import Policy
from tollgate.policy.config import Declaration
from tollgate.schema import Action, ConditionSpec, PolicyDocument, load_policy_document


def build_policy(document: PolicyDocument, base: type[Policy] = Policy) -> type[Policy]:
    """
    Create a policy type from a validated document.

    Args:
        document: The policy document
        base: Parent policy type; document declarations are merged onto it

    Raises:
        RuleSyntaxError: If a rule expression cannot be parsed
    """
    conditions = [_fact_condition(spec) for spec in document.conditions]

    rules: list[Declaration] = []
    for spec in document.rules:
        rule = parse_rule(spec.when)
        if spec.enable:
            rules.append(Declaration(rule, Action.ENABLE, tuple(spec.enable)))
        if spec.prevent:
            rules.append(Declaration(rule, Action.PREVENT, tuple(spec.prevent)))
        if spec.prevent_all:
            rules.append(Declaration(rule, Action.PREVENT, everything=True))

    return type(
        document.name,
        (base,),
        {
            "conditions": conditions,
            "rules": rules,
            "overrides": frozenset(document.overrides),
            "__module__": __name__,
        },
    )


def load_policy(path: Path | str, base: type[Policy] = Policy) -> type[Policy]:
    """
    Load and compile a YAML policy document.

    Raises:
        FileNotFoundError: If the file doesn't exist
        PolicyDocumentError: If the document is invalid
    """
    try:
        document = load_policy_document(path)
        return build_policy(document, base)
    except (ValidationError, yaml.YAMLError) as e:
        raise PolicyDocumentError(path=str(path), suggestion=str(e)) from e
    except RuleSyntaxError as e:
        raise PolicyDocumentError(path=str(path), suggestion=e.message) from e


def _fact_condition(spec: ConditionSpec) -> Condition:
    name = spec.name
    default = spec.default

    def evaluator(policy: Policy) -> Any:
        facts = policy.subject if isinstance(policy.subject, Mapping) else {}
        return facts.get(name, default)

    return Condition(
        name=name,
        evaluator=evaluator,
        scope=spec.scope,
        score=spec.score,
        description=spec.description,
    )
