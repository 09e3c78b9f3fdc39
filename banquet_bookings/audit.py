from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from banquet_bookings.models import AdminRole, AuditLogEntry, BookingStatus
from banquet_bookings.schemas import AuditLogResponse


@dataclass(frozen=True)
class AuditRecord:
    booking_id: UUID
    action: str  # human-readable label, not the raw action name
    previous_status: BookingStatus
    new_status: BookingStatus
    performed_by: UUID
    performed_by_role: AdminRole
    reason: str | None = None


class AuditTrail:
    """
    Append-only history of booking transitions.
    Entries are never updated or deleted once written.
    """

    async def record(self, entry: AuditRecord) -> AuditLogResponse:
        """Insert one entry. Joins the caller's open transaction, if any."""
        inst = await AuditLogEntry.create(
            booking_id=entry.booking_id,
            action=entry.action,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            performed_by=entry.performed_by,
            performed_by_role=entry.performed_by_role,
            reason=entry.reason,
        )
        return AuditLogResponse.model_validate(inst, from_attributes=True)

    async def list_for(self, booking_id: UUID) -> list[AuditLogResponse]:
        """Entries for one booking, newest first."""
        entries = await AuditLogEntry.filter(booking_id=booking_id).order_by(
            "-created_at"
        )
        return [AuditLogResponse.model_validate(e, from_attributes=True) for e in entries]


audit_trail = AuditTrail()
