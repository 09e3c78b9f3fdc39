from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from banquet_bookings.audit import audit_trail
from banquet_bookings.cache import invalidate_slots_cache
from banquet_bookings.crud import booking_crud
from banquet_bookings.deps import (
    CurrentUser,
    can_pay_booking,
    can_read_bookings,
    can_write_booking,
    get_acting_role,
    get_current_user,
)
from banquet_bookings.exceptions import AuthorizationError
from banquet_bookings.models import AdminRole, BookingStatus
from banquet_bookings.schemas import (
    AuditLogResponse,
    BookingCreate,
    BookingCustomerUpdate,
    BookingFilters,
    BookingResponse,
    DocumentCreate,
    DocumentResponse,
    DocumentReview,
    PaymentConfirmation,
    WorkflowActionRequest,
    WorkflowActionType,
)
from banquet_bookings.workflow import allowed_actions, booking_workflow

router = APIRouter(prefix="/bookings", tags=["bookings"])

_DOCUMENT_REVIEWERS = {AdminRole.ADMIN1, AdminRole.SUPER_ADMIN}


async def _visible_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    acting_role: AdminRole | None,
) -> BookingResponse:
    """Admins see every booking; customers only their own (others look missing)."""
    if acting_role is not None:
        booking = await booking_crud.get_booking(booking_id)
    else:
        booking = await booking_crud.get_booking(booking_id, user_id=current_user.id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return booking


# ---------------------------------------------------------------------------
# Customer endpoints
# ---------------------------------------------------------------------------


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_bookings),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> list[BookingResponse]:
    if acting_role is not None:
        return await booking_crud.list_bookings(filters=filters)
    return await booking_crud.list_bookings(filters=filters, user_id=current_user.id)


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: CurrentUser = Depends(can_write_booking),
) -> BookingResponse:
    booking = await booking_crud.create_booking(current_user.id, payload)
    await invalidate_slots_cache(booking.hall_ids)
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_bookings),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> BookingResponse:
    return await _visible_booking(booking_id, current_user, acting_role)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking_details(
    booking_id: UUID,
    payload: BookingCustomerUpdate,
    current_user: CurrentUser = Depends(can_write_booking),
) -> BookingResponse:
    updated = await booking_crud.update_customer_details(
        booking_id, current_user.id, payload
    )
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return updated


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def confirm_payment(
    booking_id: UUID,
    payload: PaymentConfirmation,
    current_user: CurrentUser = Depends(can_pay_booking),
) -> BookingResponse:
    # Trusted client assertion: no payment-provider receipt is verified here
    updated = await booking_crud.record_payment(
        booking_id, current_user.id, payload.amount
    )
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return updated


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/{booking_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    booking_id: UUID,
    payload: DocumentCreate,
    current_user: CurrentUser = Depends(can_write_booking),
) -> DocumentResponse:
    doc = await booking_crud.add_document(booking_id, current_user.id, payload)
    if not doc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found"
        )
    return doc


@router.get("/{booking_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_bookings),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> list[DocumentResponse]:
    await _visible_booking(booking_id, current_user, acting_role)
    return await booking_crud.list_documents(booking_id)


@router.patch(
    "/{booking_id}/documents/{document_id}", response_model=DocumentResponse
)
async def review_document(
    booking_id: UUID,
    document_id: UUID,
    payload: DocumentReview,
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> DocumentResponse:
    if acting_role not in _DOCUMENT_REVIEWERS:
        raise AuthorizationError("Only admin1 or super admins can verify documents.")
    doc = await booking_crud.review_document(
        booking_id, document_id, payload.status, current_user.id
    )
    if not doc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Document not found"
        )
    return doc


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------


@router.get("/{booking_id}/actions", response_model=list[WorkflowActionType])
async def list_allowed_actions(
    booking_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> list[WorkflowActionType]:
    """Actions the caller may take on this booking right now."""
    if acting_role is None:
        return []
    booking = await _visible_booking(booking_id, current_user, acting_role)
    return allowed_actions(acting_role, booking.status)


@router.post("/{booking_id}/actions", response_model=BookingResponse)
async def apply_booking_action(
    booking_id: UUID,
    payload: WorkflowActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> BookingResponse:
    action = payload.root
    result = await booking_workflow.apply_action(
        booking_id,
        action,
        actor_id=current_user.id,
        acting_role=acting_role,
        expected_version=action.version,
    )
    if result.booking.status == BookingStatus.REJECTED:
        await invalidate_slots_cache(result.booking.hall_ids)
    return result.booking


@router.get("/{booking_id}/audit", response_model=list[AuditLogResponse])
async def get_audit_trail(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_bookings),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> list[AuditLogResponse]:
    await _visible_booking(booking_id, current_user, acting_role)
    return await audit_trail.list_for(booking_id)
