"""
Rentdesk — backend REST collaborator.

A thin async wrapper over the rental platform's HTTP API, scoped to one
console's path prefix (`/admin` or `/landlord`). Attaches the stored bearer
token to every request and maps failures onto the error taxonomy:

- 401 on the login endpoint → AuthenticationError
- 401 anywhere else → session-expiry hook (given the token the request
  carried), then SessionExpiredError
- 403 → AuthorizationError (the session is left alone)
- other failures, or `success: false` → ApiError

All responses follow `{success, message, data?, pagination?}`.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from rentdesk.authz.consoles import ConsoleProfile
from rentdesk.domain.schema import ApiEnvelope, AuthResponse
from rentdesk.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    SessionExpiredError,
    extract_error_message,
)
from rentdesk.session.notifications import ACCESS_DENIED_MESSAGE
from rentdesk.session.token_store import TokenStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
PROFILE_PATH = "/auth/profile"

M = TypeVar("M", bound=BaseModel)


def _wire_value(value: str | Enum) -> str:
    return value.value if isinstance(value, Enum) else value


def _decode(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def _parse(model: type[M], payload: dict[str, Any]) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ApiError(200, "Malformed response from server", payload) from exc


class RentalApiClient:
    """
    Async rental-platform REST client.

    Uses httpx for async HTTP. The session-expiry hook is injected by the
    owning SessionContext.
    """

    def __init__(
        self,
        base_url: str,
        console: ConsoleProfile,
        token_store: TokenStore,
        on_session_expired: Callable[[str | None], None] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.console = console
        self.token_store = token_store
        self.on_session_expired = on_session_expired
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        suffix: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        path = f"{self.console.path_prefix}{suffix}"
        headers: dict[str, str] = {}
        token = self.token_store.get(self.console.token_key)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        client = await self._ensure_client()
        try:
            resp = await client.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Request failed: %s %s (%s)", method, path, exc)
            raise ApiError(0, extract_error_message(exc, "Network error"), None) from exc

        payload = _decode(resp)

        if resp.status_code == 401:
            if suffix == LOGIN_PATH:
                raise AuthenticationError(extract_error_message(payload, "Invalid credentials"))
            logger.warning("401 on %s %s; expiring %s session", method, path, self.console.kind.value)
            if self.on_session_expired is not None:
                self.on_session_expired(token)
            raise SessionExpiredError()

        if resp.status_code == 403:
            raise AuthorizationError(extract_error_message(payload, ACCESS_DENIED_MESSAGE))

        if resp.is_error:
            if resp.status_code >= 500:
                logger.error("Server error %d on %s %s", resp.status_code, method, path)
            raise ApiError(
                resp.status_code,
                extract_error_message(payload, f"Request failed with status {resp.status_code}"),
                payload,
            )

        if payload.get("success") is False:
            raise ApiError(resp.status_code, extract_error_message(payload, "Request failed"), payload)

        return payload

    # ── Auth ───────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> AuthResponse:
        payload = await self._request(
            "POST", LOGIN_PATH, json={"email": email, "password": password}
        )
        return _parse(AuthResponse, payload)

    async def get_profile(self) -> AuthResponse:
        payload = await self._request("GET", PROFILE_PATH)
        return _parse(AuthResponse, payload)

    async def logout(self) -> ApiEnvelope[Any]:
        """The backend has no logout endpoint; the token is dropped client-side."""
        return ApiEnvelope[Any](success=True, message="Logged out successfully")

    # ── Properties ─────────────────────────────────────────────

    async def list_properties(self, **filters: Any) -> ApiEnvelope[list[dict[str, Any]]]:
        payload = await self._request("GET", "/properties", params=_clean(filters))
        return _parse(ApiEnvelope[list[dict[str, Any]]], payload)

    async def approve_property(self, property_id: str) -> ApiEnvelope[Any]:
        payload = await self._request("PUT", f"/properties/{property_id}/approve")
        return _parse(ApiEnvelope[Any], payload)

    async def reject_property(self, property_id: str, reason: str) -> ApiEnvelope[Any]:
        payload = await self._request(
            "PUT", f"/properties/{property_id}/reject", json={"reason": reason}
        )
        return _parse(ApiEnvelope[Any], payload)

    # ── Applications ───────────────────────────────────────────

    async def list_applications(self, **filters: Any) -> ApiEnvelope[list[dict[str, Any]]]:
        payload = await self._request("GET", "/applications", params=_clean(filters))
        return _parse(ApiEnvelope[list[dict[str, Any]]], payload)

    async def update_application_status(
        self,
        application_id: str,
        status: str | Enum,
        notes: str | None = None,
    ) -> ApiEnvelope[Any]:
        payload = await self._request(
            "PUT",
            f"/applications/{application_id}/status",
            json=_clean({"status": _wire_value(status), "notes": notes}),
        )
        return _parse(ApiEnvelope[Any], payload)

    # ── Maintenance ────────────────────────────────────────────

    async def list_maintenance_requests(self, **filters: Any) -> ApiEnvelope[list[dict[str, Any]]]:
        payload = await self._request("GET", "/maintenance", params=_clean(filters))
        return _parse(ApiEnvelope[list[dict[str, Any]]], payload)

    async def update_maintenance_status(
        self,
        request_id: str,
        status: str | Enum,
        notes: str | None = None,
    ) -> ApiEnvelope[Any]:
        payload = await self._request(
            "PUT",
            f"/maintenance/{request_id}/status",
            json=_clean({"status": _wire_value(status), "notes": notes}),
        )
        return _parse(ApiEnvelope[Any], payload)

    async def assign_maintenance(self, request_id: str, assigned_to: str) -> ApiEnvelope[Any]:
        payload = await self._request(
            "PUT", f"/maintenance/{request_id}/assign", json={"assignedTo": assigned_to}
        )
        return _parse(ApiEnvelope[Any], payload)


def _clean(values: dict[str, Any]) -> dict[str, Any]:
    """Drop None values so they are omitted from query strings and bodies."""
    return {k: _wire_value(v) if isinstance(v, Enum) else v for k, v in values.items() if v is not None}
