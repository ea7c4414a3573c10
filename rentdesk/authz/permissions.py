"""
Permission Normalizer — canonical capability sets from raw permission data.

The backend sends permissions in two shapes: flat `"resource.action"` strings
and `{resource, actions}` groups. Both are already parsed into tagged variants
by the schema layer; this module expands them into a single immutable set of
`"resource.action"` capabilities, with `"*"` as the universal wildcard.

When the expansion is empty, the console's role table decides whether the
principal gets the full capability grant:

- privileged role (`<base>`, `alpha_<base>`, `super_<base>`) → full grant
- configured break-glass operator → full grant
- anything else → empty set

The set is computed once per authentication and replaced wholesale; it is
never mutated in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import product
from typing import Iterable

from rentdesk.authz.consoles import ConsoleProfile
from rentdesk.domain.schema import FlatPermission, GroupedPermission, Principal

logger = logging.getLogger(__name__)

WILDCARD = "*"

FULL_GRANT_RESOURCES = ("users", "properties", "applications", "payments", "maintenance")
FULL_GRANT_ACTIONS = ("read", "write", "update", "create", "delete")
FULL_GRANT_EXTRAS = (
    "analytics.read",
    "logs.read",
    "settings.read",
    "settings.write",
    "settings.update",
)


class CapabilitySet(frozenset):
    """Immutable set of canonical capability strings."""

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in self

    def allows(self, capability: str) -> bool:
        return capability in self or WILDCARD in self

    def __repr__(self) -> str:
        return f"CapabilitySet({sorted(self)!r})"


EMPTY_CAPABILITIES = CapabilitySet()


def full_capability_grant() -> CapabilitySet:
    """Every resource × action pair plus the analytics/logs/settings extras."""
    pairs = (
        f"{resource}.{action}"
        for resource, action in product(FULL_GRANT_RESOURCES, FULL_GRANT_ACTIONS)
    )
    return CapabilitySet((*pairs, *FULL_GRANT_EXTRAS))


@dataclass(frozen=True)
class BreakGlassPolicy:
    """
    Configuration-driven super-admin escape hatch.

    Keeps a named operator from being locked out when role derivation yields
    nothing. Disabled unless explicitly configured.
    """

    enabled: bool = False
    emails: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_settings(cls, settings) -> BreakGlassPolicy:
        return cls(
            enabled=settings.break_glass_enabled,
            emails=frozenset(e.strip().lower() for e in settings.break_glass_emails if e.strip()),
        )

    def applies_to(self, email: str | None) -> bool:
        if not self.enabled or not email:
            return False
        return email.strip().lower() in self.emails


DISABLED_BREAK_GLASS = BreakGlassPolicy()


def expand_raw_permissions(
    raw: Iterable[FlatPermission | GroupedPermission] | None,
) -> set[str]:
    """Union of flat strings verbatim and every `resource.action` from groups."""
    capabilities: set[str] = set()
    for entry in raw or ():
        if isinstance(entry, FlatPermission):
            capabilities.add(entry.value)
        elif isinstance(entry, GroupedPermission):
            capabilities.update(f"{entry.resource}.{action}" for action in entry.actions)
    return capabilities


def normalize(
    raw: Iterable[FlatPermission | GroupedPermission] | None,
    role_fallback: str | None,
    *,
    console: ConsoleProfile,
    principal_email: str | None = None,
    break_glass: BreakGlassPolicy = DISABLED_BREAK_GLASS,
) -> CapabilitySet:
    """
    Convert raw permissions plus a role fallback into a CapabilitySet.

    Args:
        raw: Parsed permission entries, or None when the backend sent none.
        role_fallback: The principal's effective role (elevated role, else legacy role).
        console: Profile whose privileged roles decide the fallback.
        principal_email: Used only for the break-glass check.
        break_glass: Escape-hatch policy; disabled by default.

    Returns:
        The canonical capability set. Deterministic for identical inputs.
    """
    capabilities = expand_raw_permissions(raw)
    if capabilities:
        return CapabilitySet(capabilities)

    if role_fallback and console.is_privileged(role_fallback):
        logger.debug("Full capability grant for privileged role %s", role_fallback)
        return full_capability_grant()

    if break_glass.applies_to(principal_email):
        logger.warning(
            "Break-glass capability grant applied on %s console (role=%s)",
            console.kind.value,
            role_fallback,
        )
        return full_capability_grant()

    return EMPTY_CAPABILITIES


class PermissionNormalizer:
    """
    Console-bound normalizer.

    Holds the console profile and break-glass policy so the session only has
    to hand it a principal.
    """

    def __init__(
        self,
        console: ConsoleProfile,
        break_glass: BreakGlassPolicy | None = None,
    ) -> None:
        self.console = console
        self.break_glass = break_glass or DISABLED_BREAK_GLASS

    def for_principal(self, principal: Principal) -> CapabilitySet:
        """Derive the capability set for an authenticated principal."""
        capabilities = normalize(
            principal.permissions,
            self.console.effective_role(principal),
            console=self.console,
            principal_email=principal.email,
            break_glass=self.break_glass,
        )
        logger.info(
            "Capabilities derived: console=%s role=%s count=%d wildcard=%s",
            self.console.kind.value,
            self.console.effective_role(principal),
            len(capabilities),
            capabilities.is_wildcard,
        )
        return capabilities
