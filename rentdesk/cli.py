"""
Rentdesk operator tool — inspect capability derivation and session state.

Lets an operator see exactly what a console would grant a principal, which
console routes that opens, and whether a maintenance request counts as
overdue, without running either console.

Usage:
    python -m rentdesk.cli capabilities --console admin --role admin
    python -m rentdesk.cli capabilities --console landlord --role landlord \\
        --permissions '[{"resource": "properties", "actions": ["read"]}]'
    python -m rentdesk.cli overdue --scheduled 2024-01-01T09:00:00 --status in_progress
    python -m rentdesk.cli session --console admin
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime

import structlog
from rich.console import Console
from rich.table import Table

from rentdesk.authz.consoles import get_console
from rentdesk.authz.gate import CapabilityGate, can_create_console_users, can_manage_console_users
from rentdesk.authz.permissions import BreakGlassPolicy, PermissionNormalizer
from rentdesk.config import RentdeskSettings, settings
from rentdesk.domain.schema import ConsoleKind, MaintenanceRequest, MaintenanceStatus, Principal
from rentdesk.session.store import build_session
from rentdesk.session.token_store import FileTokenStore
from rentdesk.workflows.maintenance import next_transition

console = Console()


def configure_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ════════════════════════════════════════════════════════════════
# Commands
# ════════════════════════════════════════════════════════════════


def show_capabilities(
    console_kind: str,
    role: str | None,
    elevated_role: str | None = None,
    email: str = "",
    permissions: list | None = None,
) -> Principal:
    """Derive and print the capability set and route matrix for a principal."""
    profile = get_console(console_kind)
    principal = Principal.model_validate(
        {
            "email": email,
            "role": role,
            profile.elevated_role_field: elevated_role,
            "permissions": permissions,
        }
    )
    capabilities = PermissionNormalizer(profile, BreakGlassPolicy.from_settings(settings)).for_principal(principal)
    gate = CapabilityGate(capabilities)

    console.print(f"\n[bold blue]═══ {profile.display_name} Console Capabilities ═══[/bold blue]")
    console.print(f"  Effective role: [bold]{profile.effective_role(principal)}[/bold]")
    if not profile.has_role_signal(principal):
        console.print(f"[bold red]✗ No {profile.display_name.lower()} role signal; login would be refused[/bold red]")
    console.print(f"  Capabilities: [bold]{len(capabilities)}[/bold]")

    table = Table(show_lines=False)
    table.add_column("Capability", style="cyan")
    for capability in sorted(capabilities):
        table.add_row(capability)
    console.print(table)

    routes = Table(title="Route access")
    routes.add_column("Route", style="green")
    routes.add_column("Requires", style="dim")
    routes.add_column("Access")
    for route, capability in profile.route_permissions.items():
        allowed = gate.has_permission(capability)
        routes.add_row(route, capability, "[green]✓[/green]" if allowed else "[red]✗[/red]")
    console.print(routes)

    console.print(f"  Manage {profile.display_name.lower()} users: {can_manage_console_users(principal, profile, gate)}")
    console.print(f"  Create {profile.display_name.lower()} users: {can_create_console_users(principal, profile)}")
    return principal


def show_overdue(scheduled: datetime, status: str, now: datetime | None = None) -> bool:
    request = MaintenanceRequest.model_validate(
        {"_id": "cli", "scheduledDate": scheduled, "status": status}
    )
    overdue = request.is_overdue(now)
    label = "[bold red]OVERDUE[/bold red]" if overdue else "[green]on schedule[/green]"
    console.print(f"  Status: {request.status.value} → {label}")
    step = next_transition(request.status)
    if step is not None:
        console.print(f"  Next step: {step.value}")
    return overdue


async def show_session(console_kind: str, cfg: RentdeskSettings) -> bool:
    """Restore the stored session for a console and print its state."""
    async with build_session(console_kind, cfg, token_store=FileTokenStore(cfg.token_store_path)) as session:
        state = session.state
        if not state.is_authenticated or state.principal is None:
            console.print(f"[yellow]⚠ No active {session.console.display_name} session[/yellow]")
            return False
        console.print(f"  Signed in as [bold]{state.principal.email}[/bold] ({session.console.effective_role(state.principal)})")
        console.print(f"  Capabilities: [bold]{len(state.capabilities)}[/bold]")
        return True


# ════════════════════════════════════════════════════════════════
# Entrypoint
# ════════════════════════════════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentdesk",
        description="Rentdesk console core: capability and workflow inspection",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    caps = sub.add_parser("capabilities", help="Show the capability set a principal would receive")
    caps.add_argument("--console", choices=[k.value for k in ConsoleKind], default=ConsoleKind.ADMIN.value)
    caps.add_argument("--role", default=None, help="Legacy platform role (tenant, landlord, admin)")
    caps.add_argument("--elevated-role", default=None, help="Console tier, e.g. alpha_admin or super_landlord")
    caps.add_argument("--email", default="", help="Principal e-mail (break-glass check only)")
    caps.add_argument("--permissions", default=None, help="Raw permissions as JSON")

    overdue = sub.add_parser("overdue", help="Check whether a maintenance request is overdue")
    overdue.add_argument("--scheduled", required=True, help="Scheduled date (ISO 8601)")
    overdue.add_argument("--status", choices=[s.value for s in MaintenanceStatus], required=True)

    session = sub.add_parser("session", help="Restore and show the stored console session")
    session.add_argument("--console", choices=[k.value for k in ConsoleKind], default=ConsoleKind.ADMIN.value)
    session.add_argument("--token-store", default=None, help="Token file (defaults to .env settings)")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    log = structlog.get_logger()

    if args.command == "capabilities":
        try:
            permissions = json.loads(args.permissions) if args.permissions else None
        except json.JSONDecodeError as exc:
            console.print(f"[bold red]✗ --permissions is not valid JSON:[/bold red] {exc}")
            return 2
        log.info("rentdesk.cli.capabilities", console=args.console, role=args.role)
        show_capabilities(args.console, args.role, args.elevated_role, args.email, permissions)
        return 0

    if args.command == "overdue":
        try:
            scheduled = datetime.fromisoformat(args.scheduled)
        except ValueError:
            console.print(f"[bold red]✗ Not an ISO 8601 date:[/bold red] {args.scheduled}")
            return 2
        log.info("rentdesk.cli.overdue", status=args.status)
        show_overdue(scheduled, args.status)
        return 0

    if args.command == "session":
        cfg = settings
        if args.token_store:
            cfg = settings.model_copy(update={"token_store_path": args.token_store})
        log.info("rentdesk.cli.session", console=args.console)
        active = asyncio.run(show_session(args.console, cfg))
        return 0 if active else 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
