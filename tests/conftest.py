"""
Shared fixtures: an in-memory rental backend served through httpx.MockTransport.

The fake keeps entity state server-side so tests can assert what the backend
actually holds after a transition, independently of what the client shows.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import httpx
import pytest

from rentdesk.authz.consoles import ADMIN_CONSOLE, LANDLORD_CONSOLE, ConsoleProfile
from rentdesk.authz.permissions import BreakGlassPolicy
from rentdesk.integrations.backend_client import RentalApiClient
from rentdesk.session.notifications import NotificationCenter
from rentdesk.session.store import SessionContext
from rentdesk.session.token_store import MemoryTokenStore

BASE_URL = "http://rentdesk.test/api"

_MUTATION = re.compile(
    r"^/(?P<entity>properties|applications|maintenance)/(?P<id>[^/]+)/(?P<action>approve|reject|status|assign)$"
)


def _json(status: int, body: dict[str, Any]) -> httpx.Response:
    return httpx.Response(status, json=body)


class FakeRentalBackend:
    """Just enough of the rental API for the console core."""

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, dict[str, Any]]] = {}
        self.sessions: dict[str, dict[str, Any]] = {}
        self.properties: dict[str, dict[str, Any]] = {}
        self.applications: dict[str, dict[str, Any]] = {}
        self.maintenance: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_ids: set[str] = set()
        self.forbidden_ids: set[str] = set()
        self.revoked = False
        self.hold: asyncio.Event | None = None

    # ── Seeding ────────────────────────────────────────────────

    def add_user(self, email: str, password: str = "secret", **fields: Any) -> dict[str, Any]:
        user = {
            "_id": f"u-{len(self.users) + 1}",
            "email": email,
            "firstName": "Test",
            "lastName": "User",
            **fields,
        }
        self.users[email] = (password, user)
        return user

    def issue_token(self, email: str) -> str:
        token = f"tok-{email}-{len(self.sessions)}"
        self.sessions[token] = self.users[email][1]
        return token

    def add_properties(self, *ids: str, **fields: Any) -> None:
        for pid in ids:
            self.properties[pid] = {"_id": pid, "title": f"Flat {pid}", "approvalStatus": "pending", **fields}

    def add_applications(self, *ids: str, **fields: Any) -> None:
        for aid in ids:
            self.applications[aid] = {"_id": aid, "status": "pending", **fields}

    def add_maintenance(self, *ids: str, **fields: Any) -> None:
        for mid in ids:
            self.maintenance[mid] = {"_id": mid, "title": f"Request {mid}", "status": "submitted", **fields}

    # ── Introspection ──────────────────────────────────────────

    def calls(self, method: str | None = None, contains: str = "") -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and contains in r.url.path
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ── Routing ────────────────────────────────────────────────

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.hold is not None:
            await self.hold.wait()

        path = request.url.path.removeprefix("/api")
        for prefix in ("/admin", "/landlord"):
            if path.startswith(prefix):
                path = path[len(prefix):]
                break
        body = json.loads(request.content) if request.content else {}

        if path == "/auth/login":
            return self._login(body)

        auth = request.headers.get("Authorization", "")
        token = auth.removeprefix("Bearer ").strip()
        user = self.sessions.get(token)
        if self.revoked or user is None:
            return _json(401, {"success": False, "message": "Token is not valid"})

        if path == "/auth/profile":
            return _json(200, {"success": True, "message": "Profile retrieved", "user": user})

        if request.method == "GET" and path in ("/properties", "/applications", "/maintenance"):
            return self._list(path.strip("/"), request.url.params)

        match = _MUTATION.match(path)
        if request.method == "PUT" and match:
            return self._mutate(match["entity"], match["id"], match["action"], body)

        return _json(404, {"success": False, "message": "Route not found"})

    def _login(self, body: dict[str, Any]) -> httpx.Response:
        entry = self.users.get(body.get("email", ""))
        if entry is None or entry[0] != body.get("password"):
            return _json(401, {"success": False, "message": "Invalid credentials"})
        token = self.issue_token(body["email"])
        return _json(200, {"success": True, "message": "Login successful", "user": entry[1], "token": token})

    def _list(self, entity: str, params: httpx.QueryParams) -> httpx.Response:
        items = list(getattr(self, entity).values())
        limit = int(params.get("limit", len(items) or 1))
        page = items[:limit]
        return _json(
            200,
            {
                "success": True,
                "message": "ok",
                "data": page,
                "pagination": {
                    "page": 1,
                    "pages": max(1, -(-len(items) // limit)),
                    "total": len(items),
                    "limit": limit,
                },
            },
        )

    def _mutate(self, entity: str, entity_id: str, action: str, body: dict[str, Any]) -> httpx.Response:
        store = getattr(self, entity)
        if entity_id not in store:
            return _json(404, {"success": False, "message": "Not found"})
        if entity_id in self.forbidden_ids:
            return _json(403, {"success": False, "message": "Insufficient permissions"})
        if entity_id in self.fail_ids:
            return _json(500, {"success": False, "message": f"Could not update {entity_id}"})

        record = store[entity_id]
        if action == "approve":
            record["approvalStatus"] = "approved"
            record.pop("rejectionReason", None)
        elif action == "reject":
            record["approvalStatus"] = "not_approved"
            record["rejectionReason"] = body.get("reason")
        elif action == "status":
            record["status"] = body["status"]
            if "notes" in body:
                record["notes"] = body["notes"]
        elif action == "assign":
            record["assignedTo"] = body["assignedTo"]
        return _json(200, {"success": True, "message": "Updated", "data": record})


# ════════════════════════════════════════════════════════════════
# Fixtures
# ════════════════════════════════════════════════════════════════


@pytest.fixture
def backend() -> FakeRentalBackend:
    fake = FakeRentalBackend()
    fake.add_user("admin@example.com", role="admin")
    fake.add_user("alpha@example.com", role="tenant", adminRole="alpha_admin")
    fake.add_user("tenant@example.com", role="tenant")
    fake.add_user("landlord@example.com", role="landlord")
    fake.add_user(
        "viewer@example.com",
        role="tenant",
        adminRole="analyst",
        permissions=["properties.read", {"resource": "applications", "actions": ["read"]}],
    )
    return fake


@pytest.fixture
def make_session(backend):
    """Build a SessionContext wired to the fake backend."""

    def _make(
        console: ConsoleProfile = ADMIN_CONSOLE,
        tokens: dict[str, str] | None = None,
        break_glass: BreakGlassPolicy | None = None,
    ) -> SessionContext:
        store = MemoryTokenStore(tokens)
        client = RentalApiClient(BASE_URL, console, store, transport=backend.transport)
        return SessionContext(
            console,
            client,
            store,
            notifications=NotificationCenter(),
            break_glass=break_glass,
        )

    return _make


@pytest.fixture
def landlord_console() -> ConsoleProfile:
    return LANDLORD_CONSOLE
