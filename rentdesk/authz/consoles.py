"""
Console profiles — the per-console constants the core is parameterized by.

The Admin and Landlord consoles run the same authorization and workflow
logic. What differs is the backend path prefix, the token storage key, the
base role, the elevated-role field on the principal, and the route table.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from rentdesk.domain.schema import BaseRole, ConsoleKind, Principal


def _route_table(entries: dict[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(entries))


_SHARED_ROUTES = {
    "users": "users.read",
    "users/:id": "users.read",
    "properties": "properties.read",
    "properties/:id": "properties.read",
    "applications": "applications.read",
    "applications/:id": "applications.read",
    "payments": "payments.read",
    "payments/:id": "payments.read",
    "maintenance": "maintenance.read",
    "maintenance/:id": "maintenance.read",
    "analytics": "analytics.read",
    "activity": "logs.read",
    "settings": "settings.read",
}


@dataclass(frozen=True)
class ConsoleProfile:
    """Constants for one console."""

    kind: ConsoleKind
    display_name: str
    base_role: BaseRole
    elevated_role_field: str
    path_prefix: str
    token_key: str
    route_permissions: Mapping[str, str] = field(default_factory=dict)

    # ── Role families ──────────────────────────────────────────

    @property
    def alpha_role(self) -> str:
        return f"alpha_{self.base_role.value}"

    @property
    def super_role(self) -> str:
        return f"super_{self.base_role.value}"

    @property
    def elevated_roles(self) -> frozenset[str]:
        """Every value the elevated-role field may take for this console."""
        return frozenset(
            {self.alpha_role, self.super_role, self.base_role.value, "moderator", "analyst"}
        )

    @property
    def privileged_roles(self) -> frozenset[str]:
        """Roles that earn the full capability grant when no permissions are listed."""
        return frozenset({self.base_role.value, self.alpha_role, self.super_role})

    # ── Principal helpers ──────────────────────────────────────

    def elevated_role_of(self, principal: Principal) -> str | None:
        return getattr(principal, self.elevated_role_field, None) or None

    def has_role_signal(self, principal: Principal) -> bool:
        """
        True if the principal may use this console at all.

        Either the elevated-role field is set, or the legacy role equals the
        console's base role. A principal with neither is never authorized.
        """
        return bool(self.elevated_role_of(principal)) or principal.role == self.base_role.value

    def effective_role(self, principal: Principal) -> str:
        return self.elevated_role_of(principal) or principal.role or "unknown"

    def is_privileged(self, role: str | None) -> bool:
        return bool(role) and role in self.privileged_roles

    # ── Routes ─────────────────────────────────────────────────

    def required_capability(self, route: str) -> str | None:
        """
        Capability guarding a console route, or None if the route is open.

        Routes are relative to the console root (``"properties/42/edit"``);
        ``:param`` segments in the table match any single segment.
        """
        path = route.strip("/")
        prefix = self.kind.value + "/"
        if path.startswith(prefix):
            path = path[len(prefix):]
        for pattern, capability in self.route_permissions.items():
            if _route_pattern(pattern).fullmatch(path):
                return capability
        return None


def _route_pattern(pattern: str) -> re.Pattern[str]:
    parts = [
        "[^/]+" if segment.startswith(":") else re.escape(segment)
        for segment in pattern.split("/")
    ]
    return re.compile("/".join(parts))


ADMIN_CONSOLE = ConsoleProfile(
    kind=ConsoleKind.ADMIN,
    display_name="Admin",
    base_role=BaseRole.ADMIN,
    elevated_role_field="admin_role",
    path_prefix="/admin",
    token_key="adminToken",
    route_permissions=_route_table(_SHARED_ROUTES),
)

LANDLORD_CONSOLE = ConsoleProfile(
    kind=ConsoleKind.LANDLORD,
    display_name="Landlord",
    base_role=BaseRole.LANDLORD,
    elevated_role_field="landlord_role",
    path_prefix="/landlord",
    token_key="landlordToken",
    # Literal routes first so "properties/new" is not swallowed by "properties/:id".
    route_permissions=_route_table(
        {
            "properties/new": "properties.create",
            "properties/:id/edit": "properties.update",
            **_SHARED_ROUTES,
        }
    ),
)

CONSOLES: dict[ConsoleKind, ConsoleProfile] = {
    ConsoleKind.ADMIN: ADMIN_CONSOLE,
    ConsoleKind.LANDLORD: LANDLORD_CONSOLE,
}


def get_console(kind: ConsoleKind | str) -> ConsoleProfile:
    """Look up a console profile by kind."""
    return CONSOLES[ConsoleKind(kind)]
