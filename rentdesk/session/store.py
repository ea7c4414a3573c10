"""
Session Store — authenticated principal, capability set, and lifecycle.

One SessionContext per console, constructed explicitly and passed to whatever
needs it. Lifecycle:

    anonymous → authenticating → authenticated
    anonymous → authenticating → failed(error) → anonymous
    authenticated → anonymous   (logout, or any 401 mid-session)

State is replaced wholesale on every transition. Each bootstrap, login,
logout and expiry starts a new generation; results from an older generation
are discarded when they resolve, so a slow response can never overwrite a
newer one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from rentdesk.authz.consoles import ConsoleProfile, get_console
from rentdesk.authz.gate import CapabilityGate, ViewAccess, check_view
from rentdesk.authz.permissions import (
    EMPTY_CAPABILITIES,
    BreakGlassPolicy,
    CapabilitySet,
    PermissionNormalizer,
)
from rentdesk.config import RentdeskSettings
from rentdesk.domain.schema import ConsoleKind, Principal, SessionPhase
from rentdesk.errors import AuthenticationError, RentdeskError, extract_error_message
from rentdesk.integrations.backend_client import RentalApiClient
from rentdesk.session.notifications import NotificationCenter
from rentdesk.session.token_store import FileTokenStore, TokenStore

logger = logging.getLogger(__name__)

LOGIN_IN_PROGRESS_MESSAGE = "A login attempt is already in progress."
LOGIN_SUPERSEDED_MESSAGE = "Login was superseded by a newer session change."


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of a console session."""

    principal: Principal | None = None
    is_authenticated: bool = False
    is_loading: bool = True
    error: str | None = None
    capabilities: CapabilitySet = field(default=EMPTY_CAPABILITIES)
    phase: SessionPhase = SessionPhase.ANONYMOUS


ANONYMOUS = SessionState(is_loading=False)


class SessionContext:
    """
    The session for one console.

    Exposes to the UI exactly: `login`, `logout`, `update_user`,
    `clear_error`, `has_permission`, `has_any_permission`, plus the
    `expire_session` hook the HTTP collaborator calls on 401.

    Usable as an async context manager: entering bootstraps from the stored
    token, exiting closes the HTTP client.
    """

    def __init__(
        self,
        console: ConsoleProfile,
        client: RentalApiClient,
        token_store: TokenStore,
        notifications: NotificationCenter | None = None,
        break_glass: BreakGlassPolicy | None = None,
    ) -> None:
        self.console = console
        self.client = client
        self.token_store = token_store
        self.notifications = notifications or NotificationCenter()
        self.normalizer = PermissionNormalizer(console, break_glass)
        self._state = SessionState()
        self._gate = CapabilityGate()
        self._generation = 0
        self._login_in_flight = False

        if self.client.on_session_expired is None:
            self.client.on_session_expired = self.expire_session

    async def __aenter__(self) -> SessionContext:
        await self.bootstrap()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.close()

    # ── State ──────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def principal(self) -> Principal | None:
        return self._state.principal

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def capabilities(self) -> CapabilitySet:
        return self._state.capabilities

    @property
    def gate(self) -> CapabilityGate:
        return self._gate

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if self._gate.capabilities is not state.capabilities:
            self._gate = CapabilityGate(state.capabilities)

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.info(
                "Discarding superseded %s session result (generation %d < %d)",
                self.console.kind.value,
                generation,
                self._generation,
            )
            return False
        return True

    def _authenticated(self, principal: Principal) -> SessionState:
        return SessionState(
            principal=principal,
            is_authenticated=True,
            is_loading=False,
            capabilities=self.normalizer.for_principal(principal),
            phase=SessionPhase.AUTHENTICATED,
        )

    # ── Lifecycle ──────────────────────────────────────────────

    async def bootstrap(self) -> SessionState:
        """
        Restore the session from the stored token, if any.

        No token → anonymous. A token whose profile lacks this console's role
        signal, or whose profile fetch fails, is discarded.
        """
        generation = self._next_generation()
        token = self.token_store.get(self.console.token_key)
        if not token:
            self._set_state(ANONYMOUS)
            return self._state

        self._set_state(replace(self._state, is_loading=True, phase=SessionPhase.AUTHENTICATING))
        try:
            response = await self.client.get_profile()
        except RentdeskError as exc:
            logger.warning("Session restore failed on %s console: %s", self.console.kind.value, exc)
            if self._is_current(generation):
                self.token_store.remove(self.console.token_key)
                self._set_state(ANONYMOUS)
            return self._state

        if not self._is_current(generation):
            return self._state

        user = response.user
        if not response.success or user is None or not self.console.has_role_signal(user):
            logger.info("Stored token rejected for %s console; clearing", self.console.kind.value)
            self.token_store.remove(self.console.token_key)
            self._set_state(ANONYMOUS)
            return self._state

        self.notifications.reset_session_expiry()
        self._set_state(self._authenticated(user))
        logger.info("Session restored: console=%s role=%s", self.console.kind.value, self.console.effective_role(user))
        return self._state

    async def login(self, email: str, password: str) -> None:
        """
        Authenticate with credentials.

        Raises:
            AuthenticationError: bad credentials, missing role signal, a
                collaborator failure, a login already in flight, or a
                logout or expiry that superseded this attempt before it
                resolved (the newer state is kept and no token is stored).
        """
        if self._login_in_flight:
            raise AuthenticationError(LOGIN_IN_PROGRESS_MESSAGE)

        self._login_in_flight = True
        generation = self._next_generation()
        self._set_state(
            replace(self._state, is_loading=True, error=None, phase=SessionPhase.AUTHENTICATING)
        )
        try:
            response = await self.client.login(email, password)
            user, token = response.user, response.token
            if not (response.success and user is not None and token):
                raise AuthenticationError(response.message or "Login failed")
            if not self.console.has_role_signal(user):
                raise AuthenticationError(
                    f"Access denied. {self.console.display_name} privileges required."
                )
            if not self._is_current(generation):
                raise AuthenticationError(LOGIN_SUPERSEDED_MESSAGE)
            self.token_store.set(self.console.token_key, token)
            self.notifications.reset_session_expiry()
            self._set_state(self._authenticated(user))
            logger.info("Login succeeded: console=%s role=%s", self.console.kind.value, self.console.effective_role(user))
        except RentdeskError as exc:
            message = extract_error_message(exc, "Login failed")
            if self._is_current(generation):
                self._set_state(
                    SessionState(is_loading=False, error=message, phase=SessionPhase.FAILED)
                )
            logger.info("Login failed on %s console: %s", self.console.kind.value, message)
            if isinstance(exc, AuthenticationError):
                raise
            raise AuthenticationError(message) from exc
        finally:
            self._login_in_flight = False

    async def logout(self) -> None:
        """Best-effort backend logout; always clears the token and resets state."""
        self._next_generation()
        try:
            await self.client.logout()
        except RentdeskError as exc:
            logger.error("Logout call failed: %s", exc)
        finally:
            self.token_store.remove(self.console.token_key)
            self._set_state(ANONYMOUS)

    def expire_session(self, sent_token: str | None = None) -> None:
        """
        Force the session anonymous after a 401.

        Called by the HTTP collaborator with the token the failed request
        carried. A 401 for a token that is no longer the stored one belongs
        to a session that has since been replaced, and is ignored. Clears
        the token and surfaces a single session-expired notice however many
        calls fail together.
        """
        if sent_token is not None and sent_token != self.token_store.get(self.console.token_key):
            logger.info("Ignoring 401 for a superseded %s session token", self.console.kind.value)
            return
        self._next_generation()
        was_authenticated = self._state.is_authenticated
        self.token_store.remove(self.console.token_key)
        self._set_state(ANONYMOUS)
        if was_authenticated:
            self.notifications.session_expired()
        logger.warning("Session expired on %s console", self.console.kind.value)

    def update_user(self, changes: Mapping[str, Any] | None = None, **fields: Any) -> None:
        """Merge a partial update into the principal. No-op when unauthenticated."""
        if not self._state.is_authenticated or self._state.principal is None:
            return
        merged = self._state.principal.merged({**(changes or {}), **fields})
        self._set_state(replace(self._state, principal=merged))

    def clear_error(self) -> None:
        phase = SessionPhase.ANONYMOUS if self._state.phase == SessionPhase.FAILED else self._state.phase
        self._set_state(replace(self._state, error=None, phase=phase))

    # ── Capability checks ──────────────────────────────────────

    def has_permission(self, capability: str) -> bool:
        return self._gate.has_permission(capability)

    def has_any_permission(self, capabilities: Iterable[str]) -> bool:
        return self._gate.has_any_permission(capabilities)

    def check_view(self, capability: str | None = None) -> ViewAccess:
        return check_view(
            self._gate,
            is_loading=self._state.is_loading,
            is_authenticated=self._state.is_authenticated,
            capability=capability,
        )

    def check_route(self, route: str) -> ViewAccess:
        return self.check_view(self.console.required_capability(route))


def build_session(
    console: ConsoleKind | str,
    settings: RentdeskSettings,
    *,
    token_store: TokenStore | None = None,
    notifications: NotificationCenter | None = None,
    transport: Any = None,
) -> SessionContext:
    """Composition root: wire a SessionContext from settings."""
    profile = get_console(console)
    store = token_store or FileTokenStore(settings.token_store_path)
    client = RentalApiClient(
        base_url=settings.api_base_url,
        console=profile,
        token_store=store,
        timeout=settings.http_timeout_seconds,
        transport=transport,
    )
    return SessionContext(
        console=profile,
        client=client,
        token_store=store,
        notifications=notifications,
        break_glass=BreakGlassPolicy.from_settings(settings),
    )
