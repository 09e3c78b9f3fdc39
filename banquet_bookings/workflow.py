from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from tortoise.exceptions import IntegrityError, OperationalError
from tortoise.expressions import F
from tortoise.transactions import in_transaction

from banquet_bookings.audit import AuditRecord, AuditTrail, audit_trail
from banquet_bookings.crud import booking_crud
from banquet_bookings.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from banquet_bookings.models import AdminRole, Booking, BookingStatus, PaymentStatus
from banquet_bookings.schemas import (
    AuditLogResponse,
    BookingResponse,
    WorkflowAction,
    WorkflowActionType,
)

STALE_STATE_MESSAGE = (
    "This booking was changed by someone else. Please reload it and try again."
)

# Matches Booking.advance_amount: DecimalField(max_digits=12, decimal_places=2)
_CENTS = Decimal("0.01")
_MAX_AMOUNT = Decimal("1e10")

# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

_TERMINAL = {BookingStatus.APPROVED, BookingStatus.REJECTED}

# (acting role, current status, action) -> resulting status
_TRANSITIONS: dict[
    tuple[AdminRole, BookingStatus, WorkflowActionType], BookingStatus
] = {
    (AdminRole.ADMIN1, BookingStatus.PENDING, WorkflowActionType.APPROVE): (
        BookingStatus.DOCUMENT_REVIEW
    ),
    (AdminRole.ADMIN1, BookingStatus.PENDING, WorkflowActionType.REQUEST_CHANGES): (
        BookingStatus.CHANGE_REQUESTED
    ),
    (AdminRole.ADMIN1, BookingStatus.PENDING, WorkflowActionType.REJECT): (
        BookingStatus.REJECTED
    ),
    (
        AdminRole.ADMIN2,
        BookingStatus.DOCUMENT_REVIEW,
        WorkflowActionType.REQUEST_PAYMENT,
    ): BookingStatus.PAYMENT_PENDING,
    (AdminRole.ADMIN2, BookingStatus.DOCUMENT_REVIEW, WorkflowActionType.REJECT): (
        BookingStatus.REJECTED
    ),
    (
        AdminRole.ADMIN2,
        BookingStatus.PAYMENT_PENDING,
        WorkflowActionType.FORWARD_TO_ADMIN3,
    ): BookingStatus.FINAL_APPROVAL,
    (AdminRole.ADMIN3, BookingStatus.FINAL_APPROVAL, WorkflowActionType.APPROVE): (
        BookingStatus.APPROVED
    ),
    (AdminRole.ADMIN3, BookingStatus.FINAL_APPROVAL, WorkflowActionType.REJECT): (
        BookingStatus.REJECTED
    ),
    (
        AdminRole.SUPER_ADMIN,
        BookingStatus.FINAL_APPROVAL,
        WorkflowActionType.APPROVE,
    ): BookingStatus.APPROVED,
    (
        AdminRole.SUPER_ADMIN,
        BookingStatus.FINAL_APPROVAL,
        WorkflowActionType.REJECT,
    ): BookingStatus.REJECTED,
}

# Each role writes its own notes column; admin3 shares the final-stage column
_NOTE_FIELDS: dict[AdminRole, str] = {
    AdminRole.ADMIN1: "admin1_notes",
    AdminRole.ADMIN2: "admin2_notes",
    AdminRole.ADMIN3: "super_admin_notes",
    AdminRole.SUPER_ADMIN: "super_admin_notes",
}

_NOTES_REQUIRED: dict[WorkflowActionType, str] = {
    WorkflowActionType.REJECT: "Notes are required to reject a booking.",
    WorkflowActionType.REQUEST_CHANGES: "Notes are required to request changes.",
}

_ACTION_VERBS: dict[WorkflowActionType, str] = {
    WorkflowActionType.APPROVE: "approve",
    WorkflowActionType.REJECT: "reject",
    WorkflowActionType.REQUEST_CHANGES: "request changes on",
    WorkflowActionType.REQUEST_PAYMENT: "request payment for",
    WorkflowActionType.FORWARD_TO_ADMIN3: "forward",
}


def allowed_actions(
    acting_role: AdminRole | None, status: BookingStatus
) -> list[WorkflowActionType]:
    """Actions the role may take on a booking in `status`, in table order."""
    if acting_role is None:
        return []
    actions = [
        action
        for (role, current, action) in _TRANSITIONS
        if role == acting_role and current == status
    ]
    if (
        acting_role == AdminRole.SUPER_ADMIN
        and status not in _TERMINAL
        and WorkflowActionType.APPROVE not in actions
    ):
        actions.append(WorkflowActionType.APPROVE)
    return actions


def _resolve_status(
    acting_role: AdminRole, current: BookingStatus, action: WorkflowActionType
) -> BookingStatus | None:
    new_status = _TRANSITIONS.get((acting_role, current, action))
    if new_status is not None:
        return new_status
    # super_admin override: approve straight from any non-terminal status
    if (
        acting_role == AdminRole.SUPER_ADMIN
        and action == WorkflowActionType.APPROVE
        and current not in _TERMINAL
    ):
        return BookingStatus.APPROVED
    return None


def _audit_label(
    action: WorkflowActionType, previous: BookingStatus, new: BookingStatus
) -> str:
    if action == WorkflowActionType.APPROVE:
        if new == BookingStatus.DOCUMENT_REVIEW:
            return "Documents approved"
        if previous != BookingStatus.FINAL_APPROVAL:
            return "Booking approved (override)"
        return "Booking approved"
    return {
        WorkflowActionType.REJECT: "Booking rejected",
        WorkflowActionType.REQUEST_CHANGES: "Changes requested",
        WorkflowActionType.REQUEST_PAYMENT: "Advance payment requested",
        WorkflowActionType.FORWARD_TO_ADMIN3: "Forwarded for final approval",
    }[action]


# ---------------------------------------------------------------------------
# Confirmation numbers
# ---------------------------------------------------------------------------

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_confirmation_number(now: datetime | None = None) -> str:
    """
    Short customer-facing token: base36 milliseconds plus 4 random base36 chars,
    e.g. ``GO-MB3K9Q2L7XQ4``. The unique column on bookings backs it up.
    """
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"GO-{_to_base36(millis)}{suffix}"


# ---------------------------------------------------------------------------
# Planning (pure)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    action: WorkflowActionType
    previous_status: BookingStatus
    new_status: BookingStatus
    label: str
    note_field: str
    notes: str | None
    advance_amount: Decimal | None = None
    confirmation_number: str | None = None

    def changes(self) -> dict[str, Any]:
        """Booking columns this transition writes."""
        fields: dict[str, Any] = {
            "status": self.new_status,
            self.note_field: self.notes,
        }
        if self.advance_amount is not None:
            fields["advance_amount"] = self.advance_amount
        if self.confirmation_number is not None:
            fields["confirmation_number"] = self.confirmation_number
        return fields


def plan_transition(
    booking: BookingResponse,
    action: WorkflowAction,
    acting_role: AdminRole | None,
) -> Transition:
    """
    Decide what `action` does to `booking` when performed by `acting_role`.

    Raises AuthorizationError if the (role, status, action) triple is not
    allowed and ValidationError if the payload is incomplete. Touches nothing.
    """
    action_type = WorkflowActionType(action.action)
    current = BookingStatus(booking.status)

    if acting_role is None:
        raise AuthorizationError("An admin role is required to act on bookings.")

    new_status = _resolve_status(acting_role, current, action_type)
    if new_status is None:
        raise AuthorizationError(
            f"Role '{acting_role}' cannot {_ACTION_VERBS[action_type]} "
            f"a booking in status '{current}'."
        )

    notes = action.notes.strip()
    if action_type in _NOTES_REQUIRED and not notes:
        raise ValidationError(_NOTES_REQUIRED[action_type])

    advance_amount = None
    if action_type == WorkflowActionType.REQUEST_PAYMENT:
        advance_amount = getattr(action, "advance_amount", None)
        if (
            advance_amount is None
            or not advance_amount.is_finite()
            or advance_amount <= 0
            or advance_amount >= _MAX_AMOUNT
            or advance_amount != advance_amount.quantize(_CENTS)
        ):
            raise ValidationError(
                "The advance amount must be a positive number "
                "with at most two decimal places."
            )

    if (
        action_type == WorkflowActionType.FORWARD_TO_ADMIN3
        and booking.payment_status != PaymentStatus.PAID
    ):
        raise ValidationError(
            "The advance payment has not been received yet; "
            "wait for the customer to pay before forwarding."
        )

    confirmation_number = None
    if new_status == BookingStatus.APPROVED and not booking.confirmation_number:
        confirmation_number = generate_confirmation_number()

    return Transition(
        action=action_type,
        previous_status=current,
        new_status=new_status,
        label=_audit_label(action_type, current, new_status),
        note_field=_NOTE_FIELDS[acting_role],
        notes=notes or None,
        advance_amount=advance_amount,
        confirmation_number=confirmation_number,
    )


# ---------------------------------------------------------------------------
# Applying (persisted)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActionResult:
    booking: BookingResponse
    transition: Transition
    audit_entry: AuditLogResponse


class BookingWorkflow:
    def __init__(self, audit: AuditTrail = audit_trail) -> None:
        self._audit = audit

    async def apply_action(
        self,
        booking_id: UUID,
        action: WorkflowAction,
        actor_id: UUID,
        acting_role: AdminRole | None,
        expected_version: int | None = None,
    ) -> ActionResult:
        snapshot = await booking_crud.get_booking(booking_id)
        if snapshot is None:
            raise NotFoundError("Booking not found.")
        if expected_version is not None and expected_version != snapshot.version:
            logger.warning(
                "Stale action on booking {}: loaded v{}, current v{}",
                booking_id,
                expected_version,
                snapshot.version,
            )
            raise ConflictError(STALE_STATE_MESSAGE)

        transition = plan_transition(snapshot, action, acting_role)
        return await self.commit(snapshot, transition, actor_id, acting_role)

    async def commit(
        self,
        snapshot: BookingResponse,
        transition: Transition,
        actor_id: UUID,
        acting_role: AdminRole | None,
    ) -> ActionResult:
        """
        Write `transition` planned against `snapshot` together with its audit
        entry. The booking update only lands if status and version still match
        the snapshot; otherwise ConflictError and nothing is written.
        """
        if acting_role is None:
            raise AuthorizationError("An admin role is required to act on bookings.")

        now = datetime.now(timezone.utc)
        try:
            async with in_transaction():
                updated = await Booking.filter(
                    id=snapshot.id,
                    status=transition.previous_status,
                    version=snapshot.version,
                ).update(
                    **transition.changes(),
                    version=F("version") + 1,
                    updated_at=now,
                )
                if not updated:
                    logger.warning(
                        "Conflict applying '{}' to booking {} (expected {} v{})",
                        transition.action,
                        snapshot.id,
                        transition.previous_status,
                        snapshot.version,
                    )
                    raise ConflictError(STALE_STATE_MESSAGE)

                entry = await self._audit.record(
                    AuditRecord(
                        booking_id=snapshot.id,
                        action=transition.label,
                        previous_status=transition.previous_status,
                        new_status=transition.new_status,
                        performed_by=actor_id,
                        performed_by_role=acting_role,
                        reason=transition.notes,
                    )
                )
        except (IntegrityError, OperationalError) as exc:
            logger.exception("Failed to persist transition for booking {}", snapshot.id)
            raise PersistenceError(
                "The booking could not be updated. Please try again."
            ) from exc

        logger.info(
            "Booking {} {} -> {} by {} ({})",
            snapshot.id,
            transition.previous_status,
            transition.new_status,
            actor_id,
            acting_role,
        )

        booking = await booking_crud.get_booking(snapshot.id)
        if booking is None:
            raise NotFoundError("Booking not found.")
        return ActionResult(booking=booking, transition=transition, audit_entry=entry)


booking_workflow = BookingWorkflow()
