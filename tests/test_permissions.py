"""
Tests for the Permission Normalizer.

Validates:
- Union of flat strings and grouped resource.action expansions
- Privileged-role fallback to the full grant, per console
- Break-glass policy gating
- Determinism and order independence
"""

from __future__ import annotations

import pytest

from rentdesk.authz.consoles import ADMIN_CONSOLE, LANDLORD_CONSOLE
from rentdesk.authz.permissions import (
    DISABLED_BREAK_GLASS,
    FULL_GRANT_EXTRAS,
    BreakGlassPolicy,
    PermissionNormalizer,
    full_capability_grant,
    normalize,
)
from rentdesk.config import RentdeskSettings
from rentdesk.domain.schema import Principal, parse_raw_permissions


class TestFullGrant:
    """The full capability grant."""

    def test_size_and_members(self):
        """The grant holds every resource/action pair and the extras, never the wildcard."""
        grant = full_capability_grant()
        assert len(grant) == 5 * 5 + len(FULL_GRANT_EXTRAS)
        assert "maintenance.delete" in grant
        assert "analytics.read" in grant
        assert "settings.update" in grant
        assert "*" not in grant


class TestNormalize:
    """Raw permission normalization."""

    def test_mixed_flat_and_grouped(self):
        """Flat and grouped entries merge into one set."""
        raw = parse_raw_permissions(
            [
                "users.read",
                {"resource": "properties", "actions": ["read", "update"]},
                {"resource": "broken"},
                "custom.thing",
            ]
        )
        caps = normalize(raw, "moderator", console=ADMIN_CONSOLE)
        assert caps == {"users.read", "properties.read", "properties.update", "custom.thing"}

    def test_order_independent(self):
        """Entry order does not change the result."""
        entries = ["users.read", {"resource": "payments", "actions": ["read", "create"]}, "*"]
        forward = normalize(parse_raw_permissions(entries), None, console=ADMIN_CONSOLE)
        backward = normalize(parse_raw_permissions(entries[::-1]), None, console=ADMIN_CONSOLE)
        assert forward == backward

    def test_explicit_permissions_win_over_role(self):
        """Explicit permissions are used as given, even for privileged roles."""
        raw = parse_raw_permissions(["properties.read"])
        caps = normalize(raw, "alpha_admin", console=ADMIN_CONSOLE)
        assert caps == {"properties.read"}

    @pytest.mark.parametrize("role", ["admin", "alpha_admin", "super_admin"])
    def test_privileged_admin_roles_get_full_grant(self, role):
        """Privileged admin roles without permissions get the full grant."""
        assert normalize(None, role, console=ADMIN_CONSOLE) == full_capability_grant()

    @pytest.mark.parametrize("role", ["landlord", "alpha_landlord", "super_landlord"])
    def test_privileged_landlord_roles_get_full_grant(self, role):
        """Privileged landlord roles without permissions get the full grant."""
        assert normalize([], role, console=LANDLORD_CONSOLE) == full_capability_grant()

    @pytest.mark.parametrize("role", ["moderator", "analyst", "tenant", None, ""])
    def test_unprivileged_roles_get_nothing(self, role):
        """Other roles without permissions get an empty set."""
        assert normalize(None, role, console=ADMIN_CONSOLE) == set()

    def test_privilege_is_per_console(self):
        """A role privileged on one console is not privileged on the other."""
        assert normalize(None, "admin", console=LANDLORD_CONSOLE) == set()

    def test_all_malformed_falls_back_like_empty(self):
        """A list of only malformed entries behaves like no permissions."""
        raw = parse_raw_permissions([{"actions": ["read"]}, 7])
        assert normalize(raw, "super_admin", console=ADMIN_CONSOLE) == full_capability_grant()


class TestBreakGlass:
    """The break-glass e-mail policy."""

    def setup_method(self):
        self.policy = BreakGlassPolicy(enabled=True, emails=frozenset({"ops@example.com"}))

    def test_disabled_by_default(self):
        """Break-glass grants nothing unless enabled."""
        caps = normalize(None, "tenant", console=ADMIN_CONSOLE, principal_email="ops@example.com")
        assert caps == set()
        assert DISABLED_BREAK_GLASS.applies_to("ops@example.com") is False

    def test_matching_email_gets_full_grant(self):
        """A listed e-mail gets the full grant when enabled."""
        caps = normalize(
            None,
            "tenant",
            console=ADMIN_CONSOLE,
            principal_email="OPS@example.com ",
            break_glass=self.policy,
        )
        assert caps == full_capability_grant()

    def test_other_email_gets_nothing(self):
        """An unlisted e-mail gets nothing."""
        caps = normalize(
            None,
            "tenant",
            console=ADMIN_CONSOLE,
            principal_email="someone@example.com",
            break_glass=self.policy,
        )
        assert caps == set()

    def test_does_not_override_explicit_permissions(self):
        """Explicit permissions take precedence over break-glass."""
        caps = normalize(
            parse_raw_permissions(["users.read"]),
            "tenant",
            console=ADMIN_CONSOLE,
            principal_email="ops@example.com",
            break_glass=self.policy,
        )
        assert caps == {"users.read"}

    def test_from_settings(self):
        """The policy is built from settings."""
        cfg = RentdeskSettings(break_glass_enabled=True, break_glass_emails=[" Ops@Example.com ", ""])
        policy = BreakGlassPolicy.from_settings(cfg)
        assert policy.enabled is True
        assert policy.emails == frozenset({"ops@example.com"})


class TestPermissionNormalizer:
    """Principal-level normalization."""

    def test_uses_elevated_role_before_legacy_role(self):
        """The elevated role field is preferred over the legacy role."""
        principal = Principal.model_validate({"email": "a@b.c", "role": "tenant", "adminRole": "super_admin"})
        caps = PermissionNormalizer(ADMIN_CONSOLE).for_principal(principal)
        assert caps == full_capability_grant()

    def test_moderator_with_admin_role_is_not_privileged(self):
        """A moderator elevated role outranks a legacy admin role."""
        principal = Principal.model_validate({"email": "a@b.c", "role": "admin", "adminRole": "moderator"})
        assert PermissionNormalizer(ADMIN_CONSOLE).for_principal(principal) == set()

    def test_landlord_field_ignored_on_admin_console(self):
        """The landlord role field means nothing on the admin console."""
        principal = Principal.model_validate({"email": "a@b.c", "role": "tenant", "landlordRole": "alpha_landlord"})
        assert PermissionNormalizer(ADMIN_CONSOLE).for_principal(principal) == set()
        assert PermissionNormalizer(LANDLORD_CONSOLE).for_principal(principal) == full_capability_grant()
