"""
Tests for the Application review workflow.

Validates:
- set_status and the convenience wrappers
- Bulk transitions are non-atomic and report only aggregate outcomes
- Empty selection, operator confirmation, and selection clearing
"""

from __future__ import annotations

import pytest

from rentdesk.domain.schema import Application, ApplicationStatus
from rentdesk.errors import BulkTransitionError
from rentdesk.session.notifications import NoticeLevel
from rentdesk.workflows.application import ApplicationWorkflow
from rentdesk.workflows.base import TransitionStatus


async def _workflow(make_session, confirm=None) -> ApplicationWorkflow:
    session = make_session()
    await session.login("admin@example.com", "secret")
    workflow = ApplicationWorkflow(session, confirm=confirm)
    await workflow.load()
    return workflow


class TestSetStatus:
    """Single application status changes."""

    @pytest.mark.asyncio
    async def test_pending_to_under_review(self, make_session, backend):
        """A pending application can be moved to under review."""
        backend.add_applications("a1")
        workflow = await _workflow(make_session)

        result = await workflow.mark_under_review("a1")

        assert result.ok
        assert backend.applications["a1"]["status"] == "under_review"
        assert workflow.page.get("a1").status == ApplicationStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_direct_approval_without_review(self, make_session, backend):
        """Approval does not require passing through under review first."""
        backend.add_applications("a1")
        workflow = await _workflow(make_session)
        result = await workflow.approve("a1")
        assert result.ok
        assert backend.applications["a1"]["status"] == "approved"

    @pytest.mark.asyncio
    async def test_reject_carries_notes(self, make_session, backend):
        """Rejection notes are sent with the status update."""
        backend.add_applications("a1", status="under_review")
        workflow = await _workflow(make_session)
        await workflow.reject("a1", " income not verified ")
        assert backend.applications["a1"] == {"_id": "a1", "status": "rejected", "notes": "income not verified"}

    @pytest.mark.asyncio
    async def test_reject_without_notes_aborts(self, make_session, backend):
        """Rejecting without notes should make no call."""
        backend.add_applications("a1")
        workflow = await _workflow(make_session)
        result = await workflow.reject("a1", "")
        assert result.status == TransitionStatus.ABORTED
        assert backend.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_failure_message_fallback(self, make_session, backend):
        """A failed update reports the backend message."""
        workflow = await _workflow(make_session)
        result = await workflow.set_status("missing", ApplicationStatus.APPROVED)
        assert result.status == TransitionStatus.FAILED
        assert result.message == "Not found"

    @pytest.mark.asyncio
    async def test_unknown_status_rejected_locally(self, make_session):
        """An unknown status value never reaches the backend."""
        workflow = await _workflow(make_session)
        with pytest.raises(ValueError):
            await workflow.set_status("a1", "approve")


class TestBulkSetStatus:
    """Bulk status changes across several items."""

    @pytest.mark.asyncio
    async def test_partial_failure_is_not_rolled_back(self, make_session, backend):
        """Items that succeeded stay changed when others fail."""
        backend.add_applications("a", "b")
        backend.fail_ids.add("b")
        workflow = await _workflow(make_session)

        result = await workflow.bulk_set_status(["a", "b"], ApplicationStatus.APPROVED)

        assert backend.applications["a"]["status"] == "approved"
        assert backend.applications["b"]["status"] == "pending"
        assert result.status == TransitionStatus.FAILED
        assert (result.requested, result.failed, result.succeeded) == (2, 1, 1)
        assert workflow.notifications.messages(NoticeLevel.ERROR) == ["Failed to approve applications"]
        assert workflow.page.get("a").status == ApplicationStatus.APPROVED
        with pytest.raises(BulkTransitionError) as excinfo:
            result.raise_for_failure()
        assert excinfo.value.failed == 1

    @pytest.mark.asyncio
    async def test_selection_drives_bulk_and_is_cleared(self, make_session, backend):
        """Bulk uses the selection when no ids are given and clears it on success."""
        backend.add_applications("a1", "a2", "a3")
        workflow = await _workflow(make_session)
        workflow.selection.toggle_all()

        result = await workflow.bulk_set_status(None, "rejected")

        assert result.ok
        assert {a["status"] for a in backend.applications.values()} == {"rejected"}
        assert workflow.notifications.messages(NoticeLevel.SUCCESS) == ["3 application(s) rejected successfully"]
        assert len(workflow.selection) == 0

    @pytest.mark.asyncio
    async def test_selection_kept_on_failure(self, make_session, backend):
        """A failed bulk run keeps the selection for a retry."""
        backend.add_applications("a1", "a2")
        backend.fail_ids.add("a2")
        workflow = await _workflow(make_session)
        workflow.selection.toggle_all()

        await workflow.bulk_set_status(None, ApplicationStatus.UNDER_REVIEW)

        assert workflow.selection.selected == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_empty_selection_warns(self, make_session, backend):
        """An empty selection should warn and make no call."""
        workflow = await _workflow(make_session)

        result = await workflow.bulk_set_status(None, ApplicationStatus.APPROVED)

        assert result.status == TransitionStatus.ABORTED
        assert workflow.notifications.messages(NoticeLevel.WARNING) == ["Please select applications first"]
        assert backend.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, make_session, backend):
        """Declining the confirmation prompt aborts the bulk run."""
        backend.add_applications("a1", "a2")
        prompts = []

        def decline(message):
            prompts.append(message)
            return False

        workflow = await _workflow(make_session, confirm=decline)
        result = await workflow.bulk_set_status(["a1", "a2"], ApplicationStatus.APPROVED)

        assert result.status == TransitionStatus.ABORTED
        assert prompts == ["Are you sure you want to approve 2 application(s)?"]
        assert backend.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_denied_without_capability(self, make_session, backend):
        """Bulk is refused locally without the update capability."""
        backend.add_applications("a1")
        session = make_session()
        await session.login("viewer@example.com", "secret")
        workflow = ApplicationWorkflow(session)

        result = await workflow.bulk_set_status(["a1"], ApplicationStatus.APPROVED)

        assert result.status == TransitionStatus.DENIED
        assert backend.calls("PUT") == []


class TestAvailableActions:
    """Actions offered for each status."""

    @pytest.mark.asyncio
    async def test_actions(self, make_session):
        """Pending offers every decision; terminal statuses offer none."""
        workflow = await _workflow(make_session)
        pending = Application(_id="a1")
        reviewing = Application(_id="a2", status=ApplicationStatus.UNDER_REVIEW)
        approved = Application(_id="a3", status=ApplicationStatus.APPROVED)

        assert workflow.available_actions(pending) == [
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.APPROVED,
            ApplicationStatus.REJECTED,
        ]
        assert workflow.available_actions(reviewing) == [ApplicationStatus.APPROVED, ApplicationStatus.REJECTED]
        assert workflow.available_actions(approved) == []
