"""
Capability Gate — pure authorization predicates over a CapabilitySet.

Consulted before rendering a protected view and before issuing a mutating
call. The gate never performs the protected action itself.

A capability is held when it is in the set or the set contains `"*"`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from rentdesk.authz.consoles import ConsoleProfile
from rentdesk.authz.permissions import EMPTY_CAPABILITIES, CapabilitySet
from rentdesk.domain.schema import Principal
from rentdesk.errors import AuthorizationError

logger = logging.getLogger(__name__)


class ViewAccess(str, Enum):
    """Outcome of guarding a protected view."""

    LOADING = "loading"
    LOGIN_REQUIRED = "login_required"
    ACCESS_DENIED = "access_denied"
    ALLOWED = "allowed"


@dataclass(frozen=True)
class CapabilityCheckResult:
    """Result of checking one capability."""

    capability: str
    allowed: bool
    via_wildcard: bool = False

    @property
    def reason(self) -> str:
        if self.via_wildcard:
            return f"{self.capability} granted by wildcard"
        if self.allowed:
            return f"{self.capability} granted"
        return f"{self.capability} not held"


class CapabilityGate:
    """Side-effect-free capability checks."""

    def __init__(self, capabilities: CapabilitySet | None = None) -> None:
        self.capabilities = capabilities if capabilities is not None else EMPTY_CAPABILITIES

    def has_permission(self, capability: str) -> bool:
        return self.capabilities.allows(capability)

    def has_any_permission(self, capabilities: Iterable[str]) -> bool:
        return any(self.has_permission(c) for c in capabilities)

    def check(self, capability: str) -> CapabilityCheckResult:
        direct = capability in self.capabilities
        return CapabilityCheckResult(
            capability=capability,
            allowed=direct or self.capabilities.is_wildcard,
            via_wildcard=not direct and self.capabilities.is_wildcard,
        )

    def require(self, capability: str) -> None:
        """Raise AuthorizationError unless `capability` is held."""
        if not self.has_permission(capability):
            logger.info("Capability gate denied %s", capability)
            raise AuthorizationError(capability=capability)


def check_view(
    gate: CapabilityGate,
    *,
    is_loading: bool,
    is_authenticated: bool,
    capability: str | None = None,
) -> ViewAccess:
    """
    Decide what a protected view should show.

    Order matters: while the session is still loading nothing is decided;
    an anonymous session is sent to login; an authenticated session lacking
    the capability gets the access-denied state.
    """
    if is_loading:
        return ViewAccess.LOADING
    if not is_authenticated:
        return ViewAccess.LOGIN_REQUIRED
    if capability and not gate.has_permission(capability):
        return ViewAccess.ACCESS_DENIED
    return ViewAccess.ALLOWED


# ════════════════════════════════════════════════════════════════
# Console-user management
# ════════════════════════════════════════════════════════════════


def can_manage_console_users(
    principal: Principal | None,
    console: ConsoleProfile,
    gate: CapabilityGate,
) -> bool:
    """Alpha-tier operators, or anyone holding `<base>_management.read`."""
    if principal is None:
        return False
    if console.elevated_role_of(principal) == console.alpha_role:
        return True
    return gate.has_permission(f"{console.base_role.value}_management.read")


def can_create_console_users(principal: Principal | None, console: ConsoleProfile) -> bool:
    """Only alpha and super tiers may create other console users."""
    if principal is None:
        return False
    return console.elevated_role_of(principal) in (console.alpha_role, console.super_role)
