"""
Maintenance request workflow.

    submitted → acknowledged → in_progress → completed
    any non-terminal state → cancelled

The console only offers the one legal next step for the current status. The
`set_status` primitive itself is unconstrained and leaves validation to the
backend. Technician assignment is orthogonal to status.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from rentdesk.domain.schema import MaintenanceRequest, MaintenanceStatus
from rentdesk.workflows.base import (
    BulkTransitionResult,
    PageLoader,
    StatusWorkflow,
    TransitionResult,
)

_NEXT: dict[MaintenanceStatus, MaintenanceStatus] = {
    MaintenanceStatus.SUBMITTED: MaintenanceStatus.ACKNOWLEDGED,
    MaintenanceStatus.ACKNOWLEDGED: MaintenanceStatus.IN_PROGRESS,
    MaintenanceStatus.IN_PROGRESS: MaintenanceStatus.COMPLETED,
}

TERMINAL = frozenset({MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED})

_VERBS: dict[MaintenanceStatus, tuple[str, str]] = {
    MaintenanceStatus.SUBMITTED: ("reopen", "reopened"),
    MaintenanceStatus.ACKNOWLEDGED: ("acknowledge", "acknowledged"),
    MaintenanceStatus.IN_PROGRESS: ("start", "started"),
    MaintenanceStatus.COMPLETED: ("complete", "completed"),
    MaintenanceStatus.CANCELLED: ("cancel", "cancelled"),
}


def next_transition(status: MaintenanceStatus | str) -> MaintenanceStatus | None:
    """The single forward step offered for `status`, if any."""
    return _NEXT.get(MaintenanceStatus(status))


def is_overdue(request: MaintenanceRequest, now: datetime | None = None) -> bool:
    return request.is_overdue(now)


class MaintenanceWorkflow(StatusWorkflow[MaintenanceRequest]):
    entity = "maintenance"
    label = "request"
    noun = "requests"
    capability = "maintenance.update"
    model = MaintenanceRequest

    def _loader(self) -> PageLoader:
        return self.client.list_maintenance_requests

    async def set_status(
        self,
        request_id: str,
        status: MaintenanceStatus | str,
        notes: str | None = None,
    ) -> TransitionResult:
        status = MaintenanceStatus(status)
        verb, past = _VERBS[status]
        return await self._transition(
            request_id,
            status.value,
            lambda: self.client.update_maintenance_status(request_id, status, notes),
            success_message=f"Request {past} successfully",
            failure_message=f"Failed to {verb} request",
        )

    # ── Contextual steps ───────────────────────────────────────

    def _resolve(self, request: MaintenanceRequest | str) -> MaintenanceRequest | None:
        if isinstance(request, MaintenanceRequest):
            return request
        return self.page.get(request)

    async def _step(
        self,
        request: MaintenanceRequest | str,
        target: MaintenanceStatus,
        notes: str | None = None,
    ) -> TransitionResult:
        current = self._resolve(request)
        if current is None:
            return self._aborted(str(request), target.value, "Request is not on the current page")
        if target == MaintenanceStatus.CANCELLED:
            legal = current.status not in TERMINAL
        else:
            legal = next_transition(current.status) == target
        if not legal:
            return self._aborted(
                current.id,
                target.value,
                f"Cannot {_VERBS[target][0]} a request that is {current.status.value}",
            )
        return await self.set_status(current.id, target, notes)

    async def acknowledge(self, request: MaintenanceRequest | str, notes: str | None = None) -> TransitionResult:
        return await self._step(request, MaintenanceStatus.ACKNOWLEDGED, notes)

    async def start(self, request: MaintenanceRequest | str, notes: str | None = None) -> TransitionResult:
        return await self._step(request, MaintenanceStatus.IN_PROGRESS, notes)

    async def complete(self, request: MaintenanceRequest | str, notes: str | None = None) -> TransitionResult:
        return await self._step(request, MaintenanceStatus.COMPLETED, notes)

    async def cancel(self, request: MaintenanceRequest | str, notes: str | None = None) -> TransitionResult:
        return await self._step(request, MaintenanceStatus.CANCELLED, notes)

    async def assign_technician(
        self,
        request: MaintenanceRequest | str,
        technician_id: str | None,
    ) -> TransitionResult:
        """
        Assign a technician. Leaves status alone; refused once completed.

        A bare id that is not on the loaded page skips the local status check.
        """
        current = self._resolve(request)
        request_id = current.id if current is not None else str(request)
        target = current.status.value if current is not None else "assigned"
        if not technician_id or not technician_id.strip():
            return self._aborted(request_id, target, "Please select a technician")
        if current is not None and current.status == MaintenanceStatus.COMPLETED:
            return self._aborted(request_id, target, "Cannot assign a technician to a completed request")
        technician = technician_id.strip()
        return await self._transition(
            request_id,
            target,
            lambda: self.client.assign_maintenance(request_id, technician),
            success_message="Technician assigned successfully",
            failure_message="Failed to assign technician",
        )

    async def bulk_set_status(
        self,
        request_ids: Iterable[str] | None,
        status: MaintenanceStatus | str,
    ) -> BulkTransitionResult:
        """Same no-atomicity contract as application bulk updates."""
        status = MaintenanceStatus(status)
        verb, past = _VERBS[status]
        return await self._bulk(
            request_ids,
            status.value,
            lambda request_id: self.client.update_maintenance_status(request_id, status),
            verb=verb,
            past=past,
        )

    def available_actions(self, request: MaintenanceRequest) -> list[MaintenanceStatus]:
        if not self.can_update or request.status in TERMINAL:
            return []
        return [next_transition(request.status), MaintenanceStatus.CANCELLED]
