"""
Application review workflow.

    pending      → under_review → approved | rejected
    pending      → approved | rejected       (review is optional)

Approved and rejected are terminal in the console but not guarded here; the
backend enforces them.
"""

from __future__ import annotations

from typing import Iterable

from rentdesk.domain.schema import Application, ApplicationStatus
from rentdesk.workflows.base import (
    BulkTransitionResult,
    PageLoader,
    StatusWorkflow,
    TransitionResult,
)

# target → (verb, past tense) for operator notices
_VERBS: dict[ApplicationStatus, tuple[str, str]] = {
    ApplicationStatus.APPROVED: ("approve", "approved"),
    ApplicationStatus.REJECTED: ("reject", "rejected"),
    ApplicationStatus.UNDER_REVIEW: ("mark under review", "marked under review"),
    ApplicationStatus.PENDING: ("reset", "reset to pending"),
}

TERMINAL = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED})


class ApplicationWorkflow(StatusWorkflow[Application]):
    entity = "application"
    label = "application"
    noun = "applications"
    capability = "applications.update"
    model = Application

    def _loader(self) -> PageLoader:
        return self.client.list_applications

    async def set_status(
        self,
        application_id: str,
        status: ApplicationStatus | str,
        notes: str | None = None,
    ) -> TransitionResult:
        status = ApplicationStatus(status)
        verb, past = _VERBS[status]
        return await self._transition(
            application_id,
            status.value,
            lambda: self.client.update_application_status(application_id, status, notes),
            success_message=f"Application {past} successfully",
            failure_message=f"Failed to {verb} application",
        )

    async def approve(self, application_id: str, notes: str | None = None) -> TransitionResult:
        return await self.set_status(application_id, ApplicationStatus.APPROVED, notes)

    async def reject(self, application_id: str, notes: str | None) -> TransitionResult:
        """Reject with a reason. An empty or cancelled reason aborts with no call."""
        if notes is None or not notes.strip():
            return self._aborted(
                application_id,
                ApplicationStatus.REJECTED.value,
                "A rejection reason is required",
            )
        return await self.set_status(application_id, ApplicationStatus.REJECTED, notes.strip())

    async def mark_under_review(self, application_id: str) -> TransitionResult:
        return await self.set_status(application_id, ApplicationStatus.UNDER_REVIEW)

    async def bulk_set_status(
        self,
        application_ids: Iterable[str] | None,
        status: ApplicationStatus | str,
    ) -> BulkTransitionResult:
        """
        Apply `status` to every id concurrently (default: the selection).

        Not atomic: ids that succeed stay transitioned when others fail, and
        only the aggregate outcome is reported.
        """
        status = ApplicationStatus(status)
        verb, past = _VERBS[status]
        return await self._bulk(
            application_ids,
            status.value,
            lambda application_id: self.client.update_application_status(application_id, status),
            verb=verb,
            past=past,
        )

    def available_actions(self, application: Application) -> list[ApplicationStatus]:
        if not self.can_update or application.status in TERMINAL:
            return []
        actions = [ApplicationStatus.APPROVED, ApplicationStatus.REJECTED]
        if application.status == ApplicationStatus.PENDING:
            actions.insert(0, ApplicationStatus.UNDER_REVIEW)
        return actions
