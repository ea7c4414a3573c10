"""
Property approval workflow.

    pending      → approved | not_approved
    not_approved → approved        (re-review)
    approved     → not_approved    (re-rejection)

Approval status is moderation only. Occupancy (`available`, `occupied`,
`pending`) lives on `Property.status` and is never touched here.
"""

from __future__ import annotations

from typing import Callable, Iterable

from rentdesk.config import settings
from rentdesk.domain.schema import ApprovalStatus, Property
from rentdesk.session.store import SessionContext
from rentdesk.workflows.base import (
    BulkTransitionResult,
    EntityPage,
    PageLoader,
    StatusWorkflow,
    TransitionResult,
)


class PropertyWorkflow(StatusWorkflow[Property]):
    entity = "property"
    label = "property"
    noun = "properties"
    capability = "properties.update"
    model = Property

    def __init__(
        self,
        session: SessionContext,
        page: EntityPage[Property] | None = None,
        confirm: Callable[[str], bool] | None = None,
        default_rejection_reason: str | None = None,
    ) -> None:
        super().__init__(session, page, confirm)
        self.default_rejection_reason = default_rejection_reason or settings.default_rejection_reason

    def _loader(self) -> PageLoader:
        return self.client.list_properties

    async def approve(self, property_id: str) -> TransitionResult:
        return await self._transition(
            property_id,
            ApprovalStatus.APPROVED.value,
            lambda: self.client.approve_property(property_id),
            success_message="Property approved successfully",
            failure_message="Failed to approve property",
        )

    async def reject(self, property_id: str, reason: str | None) -> TransitionResult:
        """Reject with a reason. An empty or cancelled reason aborts with no call."""
        if reason is None or not reason.strip():
            return self._aborted(
                property_id,
                ApprovalStatus.NOT_APPROVED.value,
                "A rejection reason is required",
            )
        return await self._transition(
            property_id,
            ApprovalStatus.NOT_APPROVED.value,
            lambda: self.client.reject_property(property_id, reason.strip()),
            success_message="Property rejected successfully",
            failure_message="Failed to reject property",
        )

    async def toggle_approval(
        self,
        property_id: str,
        target: ApprovalStatus | str,
        reason: str | None = None,
    ) -> TransitionResult:
        target = ApprovalStatus(target)
        if target == ApprovalStatus.APPROVED:
            return await self.approve(property_id)
        if target == ApprovalStatus.NOT_APPROVED:
            if reason is None or not reason.strip():
                reason = self.default_rejection_reason
            return await self.reject(property_id, reason)
        raise ValueError(f"Cannot move a property back to {target.value}")

    async def bulk_approve(self, property_ids: Iterable[str] | None = None) -> BulkTransitionResult:
        """Approve every id (default: the current selection). Not atomic."""
        return await self._bulk(
            property_ids,
            ApprovalStatus.APPROVED.value,
            self.client.approve_property,
            verb="approve",
            past="approved",
        )

    def available_actions(self, prop: Property) -> list[ApprovalStatus]:
        if not self.can_update:
            return []
        actions = []
        if prop.approval_status != ApprovalStatus.APPROVED:
            actions.append(ApprovalStatus.APPROVED)
        if prop.approval_status != ApprovalStatus.NOT_APPROVED:
            actions.append(ApprovalStatus.NOT_APPROVED)
        return actions
