"""
Policy registry for Tollgate.

The registry maps a resource's runtime type to the policy type governing it
and builds decision contexts for (user, subject) pairs.

Design:
    - Single global registry (default_registry) for convenience
    - Support for multiple registries for testing/isolation
    - Resolution walks the resource type's MRO, so a policy registered for a
      base class governs its subclasses
    - A type may name its policy directly with a `__policy__` attribute
    - Resolved types are memoized with double-checked locking, since
      resolution is invoked from arbitrary concurrent callers
    - A subject exposing `__policy_delegate__` is governed by the policy of
      the object it delegates to; cycles in that chain raise

Usage:
    from tollgate.policy.registry import default_registry, policy_for

    default_registry.register(Vehicle, VehiclePolicy)
    policy = policy_for(user, car, cache=shared_cache)
    policy.allowed("drive_vehicle")
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Iterator, MutableMapping

from tollgate.cache import policy_key
from tollgate.errors import CircularDelegationError, PolicyNotFoundError

if TYPE_CHECKING:
    from tollgate.policy.base import Policy

logger = logging.getLogger(__name__)

DELEGATE_ATTRIBUTE = "__policy_delegate__"
POLICY_ATTRIBUTE = "__policy__"


class _GlobalSubject:
    """Sentinel subject for decisions that concern no particular resource."""

    id = "global"

    def __repr__(self) -> str:
        return "GLOBAL"


GLOBAL = _GlobalSubject()


class PolicyRegistry:
    """
    Registry for looking up policy types by resource type.

    Attributes:
        nil_policy: Policy type used for an absent (None) subject
        global_policy: Policy type used for the GLOBAL subject
    """

    def __init__(
        self,
        nil_policy: type[Policy] | None = None,
        global_policy: type[Policy] | None = None,
    ) -> None:
        self._policies: dict[type, type[Policy]] = {}
        self._resolved: dict[type, type[Policy] | None] = {}
        self._lock = threading.Lock()
        self.nil_policy = nil_policy
        self.global_policy = global_policy

    def register(self, resource_type: type, policy_type: type[Policy]) -> None:
        """
        Register the policy type governing `resource_type` and its subclasses.

        Re-registration replaces the previous policy type.
        """
        if not isinstance(resource_type, type):
            msg = f"Expected a type, got {resource_type!r}"
            raise ValueError(msg)

        with self._lock:
            self._policies[resource_type] = policy_type
            # memoized resolutions may now be stale
            self._resolved.clear()

    def unregister(self, resource_type: type) -> bool:
        """Remove a registration. Returns False if none existed."""
        with self._lock:
            if resource_type not in self._policies:
                return False
            del self._policies[resource_type]
            self._resolved.clear()
            return True

    def clear(self) -> None:
        """Remove all registrations."""
        with self._lock:
            self._policies.clear()
            self._resolved.clear()

    def resolve(self, subject: Any) -> type[Policy]:
        """
        The policy type governing `subject`.

        Raises:
            PolicyNotFoundError: If no policy is registered for the subject's type
            CircularDelegationError: If the subject's delegate chain loops
        """
        if subject is GLOBAL:
            return self.global_policy or _builtin("GlobalPolicy")
        if subject is None:
            return self.nil_policy or _builtin("NilPolicy")

        subject = find_delegate(subject)
        policy_type = self.policy_for_type(type(subject))
        if policy_type is None:
            raise PolicyNotFoundError(resource_type=type(subject).__name__)
        return policy_type

    def has_policy(self, subject: Any) -> bool:
        """Check whether a policy governs `subject`'s type."""
        return self.policy_for_type(type(subject)) is not None

    def policy_for_type(self, resource_type: type) -> type[Policy] | None:
        """Resolve a resource type, memoized. Returns None if nothing matches."""
        try:
            return self._resolved[resource_type]
        except KeyError:
            pass

        with self._lock:
            # re-check in case another thread resolved it meanwhile
            if resource_type in self._resolved:
                return self._resolved[resource_type]

            policy_type = self._compute_policy_for_type(resource_type)
            self._resolved[resource_type] = policy_type
            logger.debug(
                "Resolved %s to %s",
                resource_type.__name__,
                policy_type.__name__ if policy_type else None,
            )
            return policy_type

    def policy_for(
        self,
        user: Any,
        subject: Any,
        cache: MutableMapping[str, Any] | None = None,
    ) -> Policy:
        """
        The decision context for (user, subject), memoized in `cache`.

        Contexts sharing a cache mapping share condition results, and a
        second request for the same pair returns the same context.
        """
        if cache is None:
            cache = {}

        key = policy_key(user, subject)
        if key in cache:
            return cache[key]

        policy = self.resolve(subject)(user, subject, cache=cache)
        return cache.setdefault(key, policy)

    def _compute_policy_for_type(self, resource_type: type) -> type[Policy] | None:
        explicit = getattr(resource_type, POLICY_ATTRIBUTE, None)
        if explicit is not None:
            return explicit

        for klass in resource_type.__mro__:
            policy_type = self._policies.get(klass)
            if policy_type is not None:
                return policy_type

        return None

    def list_policies(self) -> list[tuple[str, str]]:
        """Registered (resource type, policy type) names, sorted."""
        return sorted(
            (resource_type.__name__, policy_type.__name__)
            for resource_type, policy_type in self._policies.items()
        )

    def __len__(self) -> int:
        return len(self._policies)

    def __iter__(self) -> Iterator[type]:
        return iter(list(self._policies))

    def __contains__(self, resource_type: type) -> bool:
        return resource_type in self._policies

    def __repr__(self) -> str:
        entries = ", ".join(f"{r}: {p}" for r, p in self.list_policies())
        return f"<PolicyRegistry: [{entries}]>"


def find_delegate(subject: Any) -> Any:
    """
    Follow `__policy_delegate__` links to the object whose policy applies.

    Raises:
        CircularDelegationError: If an object is visited twice
    """
    seen: set[int] = set()
    chain: list[str] = []

    while hasattr(subject, DELEGATE_ATTRIBUTE):
        chain.append(repr(subject))
        if id(subject) in seen:
            raise CircularDelegationError(chain=chain)
        seen.add(id(subject))
        subject = getattr(subject, DELEGATE_ATTRIBUTE)

    return subject


def _builtin(name: str) -> type[Policy]:
    from tollgate.policy import base

    return getattr(base, name)


# Global default registry instance
default_registry = PolicyRegistry()


def register_policy(resource_type: type, policy_type: type[Policy]) -> None:
    """Register a policy type in the default registry."""
    default_registry.register(resource_type, policy_type)


def policy_for(user: Any, subject: Any, cache: MutableMapping[str, Any] | None = None) -> Policy:
    """Build or fetch a decision context using the default registry."""
    return default_registry.policy_for(user, subject, cache=cache)
