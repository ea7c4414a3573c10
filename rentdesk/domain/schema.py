"""
Console Schema — Pydantic models for the principal, permissions, and the
three moderated/operational entities.

These models are the canonical shapes for everything the consoles read off
the wire. Raw permission data is normalized here, at deserialization, into a
tagged union so nothing downstream has to inspect shapes again.

Wire format is the backend's camelCase JSON (`_id`, `adminRole`,
`approvalStatus`, `scheduledDate`); attributes are snake_case.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Generic, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class ConsoleKind(str, enum.Enum):
    """The two role-scoped consoles."""

    ADMIN = "admin"
    LANDLORD = "landlord"


class BaseRole(str, enum.Enum):
    """Legacy platform role carried on every user record."""

    TENANT = "tenant"
    LANDLORD = "landlord"
    ADMIN = "admin"


class SessionPhase(str, enum.Enum):
    """Session lifecycle states."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class ApprovalStatus(str, enum.Enum):
    """Moderation state of a Property."""

    PENDING = "pending"
    APPROVED = "approved"
    NOT_APPROVED = "not_approved"


class OccupancyStatus(str, enum.Enum):
    """Operational occupancy of a Property. Independent of approval."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    PENDING = "pending"


class ApplicationStatus(str, enum.Enum):
    """Rental application review state."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class MaintenanceStatus(str, enum.Enum):
    """Maintenance request lifecycle."""

    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaintenanceCategory(str, enum.Enum):
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    HVAC = "hvac"
    APPLIANCE = "appliance"
    STRUCTURAL = "structural"
    OTHER = "other"


class MaintenancePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ════════════════════════════════════════════════════════════════
# Raw permissions (tagged union)
# ════════════════════════════════════════════════════════════════


class FlatPermission(BaseModel):
    """A bare `"resource.action"` string as sent by the backend."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["flat"] = "flat"
    value: str


class GroupedPermission(BaseModel):
    """A `{resource, actions}` record, expanded to one capability per action."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["grouped"] = "grouped"
    resource: str
    actions: tuple[str, ...] = ()


RawPermission = Annotated[FlatPermission | GroupedPermission, Field(discriminator="kind")]


def parse_raw_permissions(value: Any) -> list[FlatPermission | GroupedPermission] | None:
    """
    Convert wire permission data into tagged variants.

    Strings become FlatPermission; dicts with a non-empty string `resource`
    and a list `actions` become GroupedPermission. Anything else is dropped
    without error. A non-list value yields an empty list; None stays None.
    """
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        logger.debug("Ignoring non-list permissions payload of type %s", type(value).__name__)
        return []

    parsed: list[FlatPermission | GroupedPermission] = []
    dropped = 0
    for entry in value:
        if isinstance(entry, (FlatPermission, GroupedPermission)):
            parsed.append(entry)
        elif isinstance(entry, str):
            parsed.append(FlatPermission(value=entry))
        elif isinstance(entry, Mapping):
            if entry.get("kind") == "flat" and isinstance(entry.get("value"), str):
                parsed.append(FlatPermission(value=entry["value"]))
                continue
            resource = entry.get("resource")
            actions = entry.get("actions")
            if isinstance(resource, str) and resource and isinstance(actions, (list, tuple)):
                parsed.append(
                    GroupedPermission(
                        resource=resource,
                        actions=tuple(a for a in actions if isinstance(a, str) and a),
                    )
                )
            else:
                dropped += 1
        else:
            dropped += 1

    if dropped:
        logger.debug("Dropped %d malformed permission entries", dropped)
    return parsed


# ════════════════════════════════════════════════════════════════
# Wire models
# ════════════════════════════════════════════════════════════════


class WireModel(BaseModel):
    """Base for backend records: camelCase on the wire, unknown keys kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Principal(WireModel):
    """
    The authenticated user.

    `role` is the legacy platform role. `admin_role` / `landlord_role` are the
    elevated tiers; exactly one family applies per console.
    """

    id: str | None = Field(default=None, alias="_id")
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str | None = None
    admin_role: str | None = None
    landlord_role: str | None = None
    permissions: list[RawPermission] | None = None
    is_verified: bool = False
    is_active: bool | None = None

    @field_validator("permissions", mode="before")
    @classmethod
    def _normalize_permission_shapes(cls, value: Any) -> Any:
        return parse_raw_permissions(value)

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def merged(self, changes: Mapping[str, Any]) -> Principal:
        """Return a copy with `changes` applied. Keys may be wire or attribute names."""
        by_alias = {
            (info.alias or to_camel(name)): name
            for name, info in type(self).model_fields.items()
        }
        update = {by_alias.get(key, key): value for key, value in changes.items()}
        if "permissions" in update:
            update["permissions"] = parse_raw_permissions(update["permissions"])
        return self.model_copy(update=update)


class Pagination(BaseModel):
    page: int = 1
    pages: int = 1
    total: int = 0
    limit: int | None = None


T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Standard backend response: `{success, message, data?, pagination?}`."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: str = ""
    data: T | None = None
    pagination: Pagination | None = None


class AuthResponse(BaseModel):
    """Login / profile response. `token` is only present on login."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: str = ""
    user: Principal | None = None
    token: str | None = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Property(WireModel):
    """
    A listed property.

    `approval_status` is moderation; `status` is occupancy. The two are never
    derived from each other.
    """

    id: str = Field(alias="_id")
    title: str = ""
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    status: OccupancyStatus | None = None
    rejection_reason: str | None = None
    is_active: bool = True


class Application(WireModel):
    """A tenant's rental application."""

    id: str = Field(alias="_id")
    status: ApplicationStatus = ApplicationStatus.PENDING
    notes: str | None = None
    rejection_reason: str | None = None
    reviewed_at: datetime | None = None


class MaintenanceRequest(WireModel):
    """A maintenance request. Category and priority are descriptive, not state."""

    id: str = Field(alias="_id")
    title: str = ""
    description: str = ""
    category: MaintenanceCategory = MaintenanceCategory.OTHER
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    status: MaintenanceStatus = MaintenanceStatus.SUBMITTED
    assigned_to: str | None = None
    scheduled_date: datetime | None = None
    completed_date: datetime | None = None
    notes: str | None = None

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Scheduled in the past and not completed. Display-only."""
        if self.scheduled_date is None or self.status == MaintenanceStatus.COMPLETED:
            return False
        current = _as_utc(now) if now is not None else datetime.now(timezone.utc)
        return _as_utc(self.scheduled_date) < current

    @computed_field
    @property
    def overdue(self) -> bool:
        return self.is_overdue()
