"""
Entity Status Workflows — shared transition machinery.

Every status change follows the same shape:

    gate check → collaborator call → notice → reload the page

No local entity is ever mutated optimistically. The page is refetched after
every attempt, success or failure, so what the operator sees is always the
server's view. Bulk transitions fan out one call per id concurrently and
report an aggregate outcome only; items that succeeded are not rolled back
when others fail.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Generic, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from rentdesk.domain.schema import ApiEnvelope, Pagination
from rentdesk.errors import (
    AuthorizationError,
    BulkTransitionError,
    RentdeskError,
    SessionExpiredError,
    TransitionError,
    extract_error_message,
)
from rentdesk.session.notifications import ACCESS_DENIED_MESSAGE, SESSION_EXPIRED_MESSAGE
from rentdesk.session.store import SessionContext
from rentdesk.workflows.selection import SelectionModel

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)

PageLoader = Callable[..., Awaitable[ApiEnvelope[list[dict[str, Any]]]]]


class TransitionStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    ABORTED = "aborted"  # no call made: empty reason, illegal next step, operator declined
    DENIED = "denied"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one status transition."""

    entity: str
    entity_id: str
    target: str
    status: TransitionStatus
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == TransitionStatus.APPLIED

    def raise_for_failure(self) -> None:
        if self.status == TransitionStatus.DENIED:
            raise AuthorizationError(self.message or ACCESS_DENIED_MESSAGE)
        if self.status == TransitionStatus.FAILED:
            raise TransitionError(self.entity, self.entity_id, self.target, self.message or "")


@dataclass(frozen=True)
class BulkTransitionResult:
    """Aggregate outcome of a bulk transition. Counts only, never per-item."""

    entity: str
    target: str
    status: TransitionStatus
    requested: int = 0
    failed: int = 0
    message: str | None = None

    @property
    def succeeded(self) -> int:
        return self.requested - self.failed

    @property
    def ok(self) -> bool:
        return self.status == TransitionStatus.APPLIED

    def raise_for_failure(self) -> None:
        if self.status == TransitionStatus.DENIED:
            raise AuthorizationError(self.message or ACCESS_DENIED_MESSAGE)
        if self.status == TransitionStatus.FAILED:
            raise BulkTransitionError(self.entity, self.target, self.requested, self.failed)


# ════════════════════════════════════════════════════════════════
# Entity page
# ════════════════════════════════════════════════════════════════


class EntityPage(Generic[E]):
    """
    The currently loaded page of one entity list.

    Entities are owned by the backend; this only holds what the last
    `reload()` returned. Malformed records are skipped.
    """

    def __init__(
        self,
        loader: PageLoader,
        model: type[E],
        filters: dict[str, Any] | None = None,
    ) -> None:
        self.loader = loader
        self.model = model
        self.filters: dict[str, Any] = dict(filters or {})
        self.items: list[E] = []
        self.pagination: Pagination | None = None
        self.selection = SelectionModel()
        self.reload_count = 0

    async def reload(self) -> list[E]:
        envelope = await self.loader(**self.filters)
        items: list[E] = []
        for raw in envelope.data or []:
            try:
                items.append(self.model.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed %s record: %s", self.model.__name__, exc.errors()[:1])
        self.items = items
        self.pagination = envelope.pagination
        self.selection.set_page(item.id for item in items)
        self.reload_count += 1
        return items

    def get(self, entity_id: str) -> E | None:
        for item in self.items:
            if item.id == entity_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


# ════════════════════════════════════════════════════════════════
# Workflow base
# ════════════════════════════════════════════════════════════════


class StatusWorkflow(Generic[E]):
    """
    Base for the per-entity workflows.

    Subclasses set `entity`, `label` and `noun` (singular and plural, for
    notices), `capability` and `model`, and supply `_loader()`.
    """

    entity: ClassVar[str]
    label: ClassVar[str]
    noun: ClassVar[str]
    capability: ClassVar[str]
    model: ClassVar[type[BaseModel]]

    def __init__(
        self,
        session: SessionContext,
        page: EntityPage[E] | None = None,
        confirm: Callable[[str], bool] | None = None,
    ) -> None:
        self.session = session
        self.client = session.client
        self.notifications = session.notifications
        self.page: EntityPage[E] = page if page is not None else EntityPage(self._loader(), self.model)
        self.confirm = confirm

    def _loader(self) -> PageLoader:
        raise NotImplementedError

    @property
    def selection(self) -> SelectionModel:
        return self.page.selection

    @property
    def can_update(self) -> bool:
        return self.session.has_permission(self.capability)

    async def load(self) -> list[E]:
        return await self.page.reload()

    async def _reload(self) -> None:
        if not self.session.is_authenticated:
            return
        try:
            await self.page.reload()
        except RentdeskError as exc:
            logger.warning("Reload of %s list failed: %s", self.entity, exc)

    def _denied(self) -> bool:
        try:
            self.session.gate.require(self.capability)
        except AuthorizationError:
            self.notifications.error(ACCESS_DENIED_MESSAGE)
            return True
        return False

    # ── Single transition ──────────────────────────────────────

    async def _transition(
        self,
        entity_id: str,
        target: str,
        call: Callable[[], Awaitable[ApiEnvelope[Any]]],
        *,
        success_message: str,
        failure_message: str,
    ) -> TransitionResult:
        if self._denied():
            return TransitionResult(
                self.entity, entity_id, target, TransitionStatus.DENIED, ACCESS_DENIED_MESSAGE
            )

        try:
            envelope = await call()
        except SessionExpiredError:
            # the session already announced the expiry
            result = TransitionResult(
                self.entity, entity_id, target, TransitionStatus.FAILED, SESSION_EXPIRED_MESSAGE
            )
        except AuthorizationError as exc:
            message = extract_error_message(exc, ACCESS_DENIED_MESSAGE)
            self.notifications.error(message)
            result = TransitionResult(self.entity, entity_id, target, TransitionStatus.DENIED, message)
        except RentdeskError as exc:
            message = extract_error_message(exc, failure_message)
            logger.warning("%s %s → %s failed: %s", self.entity, entity_id, target, message)
            self.notifications.error(message)
            result = TransitionResult(self.entity, entity_id, target, TransitionStatus.FAILED, message)
        else:
            message = envelope.message or success_message
            logger.info("%s %s → %s", self.entity, entity_id, target)
            self.notifications.success(message)
            result = TransitionResult(self.entity, entity_id, target, TransitionStatus.APPLIED, message)

        await self._reload()
        return result

    def _aborted(self, entity_id: str, target: str, message: str) -> TransitionResult:
        self.notifications.warning(message)
        return TransitionResult(self.entity, entity_id, target, TransitionStatus.ABORTED, message)

    # ── Bulk transition ────────────────────────────────────────

    async def _bulk(
        self,
        ids: Iterable[str] | None,
        target: str,
        call_one: Callable[[str], Awaitable[ApiEnvelope[Any]]],
        *,
        verb: str,
        past: str,
    ) -> BulkTransitionResult:
        targets = list(ids) if ids is not None else self.selection.selected
        if not targets:
            message = f"Please select {self.noun} first"
            self.notifications.warning(message)
            return BulkTransitionResult(self.entity, target, TransitionStatus.ABORTED, message=message)

        if self._denied():
            return BulkTransitionResult(
                self.entity, target, TransitionStatus.DENIED, len(targets), message=ACCESS_DENIED_MESSAGE
            )

        if self.confirm is not None and not self.confirm(
            f"Are you sure you want to {verb} {len(targets)} {self.label}(s)?"
        ):
            return BulkTransitionResult(self.entity, target, TransitionStatus.ABORTED, len(targets))

        outcomes = await asyncio.gather(*(call_one(i) for i in targets), return_exceptions=True)
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        for failure in failures:
            if not isinstance(failure, RentdeskError):
                raise failure

        if not failures:
            message = f"{len(targets)} {self.label}(s) {past} successfully"
            self.notifications.success(message)
            self.selection.clear()
            status = TransitionStatus.APPLIED
        elif any(isinstance(f, SessionExpiredError) for f in failures):
            message = SESSION_EXPIRED_MESSAGE
            status = TransitionStatus.FAILED
        else:
            message = f"Failed to {verb} {self.noun}"
            self.notifications.error(message)
            status = TransitionStatus.FAILED

        logger.info(
            "Bulk %s → %s: %d requested, %d failed", self.entity, target, len(targets), len(failures)
        )
        await self._reload()
        return BulkTransitionResult(
            self.entity, target, status, len(targets), len(failures), message
        )
