"""
Cache keys and invalidation for Tollgate.

Condition results and decision contexts are stored in a plain mutable
mapping supplied by the caller. Keys are stable, path-like strings so that
an application can find and remove exactly the entries a change affects:

    /dp/condition/<policy>/<condition>                     (global scope)
    /dp/condition/<policy>/<condition>/<user>              (user scope)
    /dp/condition/<policy>/<condition>/<subject>           (subject scope)
    /dp/condition/<policy>/<condition>/<user>,<subject>    (no scope)
    /dp/policy/<user>/<subject>                            (decision contexts)

Nothing is invalidated automatically; see `invalidate`.
"""

import sys
from typing import Any, Iterable, MutableMapping

CONDITION_PREFIX = "/dp/condition"
POLICY_PREFIX = "/dp/policy"

_MISSING = object()


def user_key(user: Any) -> str:
    """Identity component for a principal."""
    if user is None:
        return "<anonymous>"
    return _id_for(user)


def subject_key(subject: Any) -> str:
    """Identity component for a resource."""
    if subject is None:
        return "<nil>"
    if isinstance(subject, str):
        return repr(subject)
    return f"{type(subject).__name__}:{_id_for(subject)}"


def policy_key(user: Any, subject: Any) -> str:
    """Key under which `policy_for` memoizes a decision context."""
    return f"{POLICY_PREFIX}/{user_key(user)}/{subject_key(subject)}"


def type_key(policy_type: type) -> str:
    """
    Identity of the policy type that declared a condition.

    Types that cannot be found again by module and qualified name (defined
    inside a function, or created with type()) may share that name with
    unrelated types, so they are told apart by object id.
    """
    name = f"{policy_type.__module__}.{policy_type.__qualname__}"
    if not _is_importable(policy_type):
        return f"{name}#{id(policy_type)}"
    return name


def invalidate(cache: MutableMapping[str, Any], keys: Iterable[str]) -> int:
    """
    Remove the given keys from a shared cache.

    Runners that already resolved keep their answer until `uncache()` is
    called on them.

    Returns:
        Number of keys that were present and removed
    """
    removed = 0
    for key in keys:
        if cache.pop(key, _MISSING) is not _MISSING:
            removed += 1
    return removed


def _is_importable(policy_type: type) -> bool:
    target: Any = sys.modules.get(policy_type.__module__)
    for part in policy_type.__qualname__.split("."):
        target = getattr(target, part, None)
    return target is policy_type


def _id_for(obj: Any) -> str:
    identifier = getattr(obj, "id", None)
    if identifier is None:
        return f"#{id(obj)}"
    return str(identifier)
