from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from loguru import logger
from tortoise.expressions import F
from tortoise.transactions import in_transaction

from banquet_bookings import settings
from banquet_bookings.exceptions import ConflictError, NotFoundError, ValidationError
from banquet_bookings.models import (
    BanquetHall,
    Booking,
    BookingDocument,
    BookingStatus,
    DocumentStatus,
    PaymentStatus,
)
from banquet_bookings.schemas import (
    BookingCreate,
    BookingCustomerUpdate,
    BookingFilters,
    BookingResponse,
    BookingSlot,
    DocumentCreate,
    DocumentResponse,
    HallResponse,
)

# Statuses in which the customer still owns the booking's editable fields
CUSTOMER_EDITABLE_STATUSES = {BookingStatus.PENDING, BookingStatus.CHANGE_REQUESTED}


def _to_response(inst: Booking) -> BookingResponse:
    """Build a BookingResponse from a booking whose halls are already fetched."""
    data = {
        name: getattr(inst, name)
        for name in BookingResponse.model_fields
        if name != "hall_ids"
    }
    return BookingResponse(**data, hall_ids=[h.id for h in inst.halls])


class BookingCRUD:
    async def _has_hall_conflict(
        self,
        hall_ids: list[UUID],
        start: datetime,
        end: datetime,
    ) -> bool:
        """Return True if a live booking of any of these halls overlaps the window."""
        return await Booking.filter(
            halls__id__in=hall_ids,
            status__not_in=[BookingStatus.REJECTED],
            start_datetime__lt=end,
            end_datetime__gt=start,
        ).exists()

    async def create_booking(
        self, user_id: UUID, payload: BookingCreate
    ) -> BookingResponse:
        """
        Persist a new booking after validating:
          - every selected hall exists and is active
          - the minimum duration
          - no overlap with other live bookings of the same halls (atomic)
        Total amount is the sum of hourly rates times duration.
        """
        halls = await BanquetHall.filter(id__in=payload.hall_ids)
        if len(halls) != len(payload.hall_ids):
            raise NotFoundError("One or more selected halls were not found.")
        inactive = sorted(h.name for h in halls if not h.is_active)
        if inactive:
            raise ValidationError(
                f"Halls not available for booking: {', '.join(inactive)}."
            )

        duration_hours = Decimal(
            str((payload.end_datetime - payload.start_datetime).total_seconds() / 3600)
        )
        if duration_hours < settings.MIN_BOOKING_HOURS:
            raise ValidationError(
                f"Minimum booking is {settings.MIN_BOOKING_HOURS} hours."
            )
        total_amount = sum(
            (h.price_per_hour * duration_hours for h in halls), Decimal("0")
        ).quantize(Decimal("0.01"))

        async with in_transaction():
            if await self._has_hall_conflict(
                payload.hall_ids, payload.start_datetime, payload.end_datetime
            ):
                raise ConflictError(
                    "Booking conflicts with an existing booking for a selected hall."
                )

            inst = await Booking.create(
                user_id=user_id,
                start_datetime=payload.start_datetime,
                end_datetime=payload.end_datetime,
                total_amount=total_amount,
                customer_name=payload.customer_name,
                customer_email=str(payload.customer_email),
                customer_phone=payload.customer_phone,
                event_type=payload.event_type,
                guest_count=payload.guest_count,
                special_requests=payload.special_requests,
            )
            await inst.halls.add(*halls)

        logger.info("Booking {} created by {} for {} hall(s)", inst.id, user_id, len(halls))
        await inst.fetch_related("halls")
        return _to_response(inst)

    async def get_booking(
        self,
        booking_id: UUID,
        user_id: UUID | None = None,
    ) -> BookingResponse | None:
        if user_id is not None:
            inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        else:
            inst = await Booking.get_or_none(id=booking_id)

        if not inst:
            return None
        await inst.fetch_related("halls")
        return _to_response(inst)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> list[BookingResponse]:
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        offset = (filters.page - 1) * filters.page_size
        qs = qs.offset(offset).limit(filters.page_size).prefetch_related("halls")

        bookings = await qs
        return [_to_response(b) for b in bookings]

    async def update_customer_details(
        self,
        booking_id: UUID,
        user_id: UUID,
        payload: BookingCustomerUpdate,
    ) -> BookingResponse | None:
        """Owner edits while the booking is still pending or sent back."""
        inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        if not inst:
            return None
        if inst.status not in CUSTOMER_EDITABLE_STATUSES:
            raise ValidationError(
                "Booking details can only be changed before review starts "
                "or while changes are requested."
            )

        changes = payload.model_dump(exclude_unset=True)
        if changes:
            updated = await Booking.filter(id=booking_id, status=inst.status).update(
                **changes, updated_at=datetime.now(timezone.utc)
            )
            if not updated:
                raise ConflictError(
                    "The booking moved into review while you were editing it."
                )
        return await self.get_booking(booking_id)

    async def record_payment(
        self,
        booking_id: UUID,
        user_id: UUID,
        amount: Decimal,
    ) -> BookingResponse | None:
        """
        Mark the advance as paid. Status stays payment_pending until admin2
        forwards the booking; no audit entry is written for payments.
        """
        inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        if not inst:
            return None
        if inst.status != BookingStatus.PAYMENT_PENDING:
            raise ValidationError(
                "Payment is only accepted while the booking is awaiting payment."
            )
        if inst.payment_status == PaymentStatus.PAID:
            raise ValidationError("Payment has already been received for this booking.")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("The payment amount must be a positive number.")
        if inst.advance_amount is not None and amount < inst.advance_amount:
            raise ValidationError(
                f"The payment must cover the advance amount of {inst.advance_amount}."
            )

        now = datetime.now(timezone.utc)
        updated = await Booking.filter(
            id=booking_id,
            status=BookingStatus.PAYMENT_PENDING,
            version=inst.version,
        ).update(
            payment_status=PaymentStatus.PAID,
            payment_date=now,
            version=F("version") + 1,
            updated_at=now,
        )
        if not updated:
            raise ConflictError(
                "This booking was changed by someone else. Please reload it and try again."
            )

        logger.info("Payment of {} recorded for booking {}", amount, booking_id)
        return await self.get_booking(booking_id)

    async def list_occupied_slots(self, hall_id: UUID) -> list[BookingSlot]:
        """Return booked time windows for a hall; no user info exposed."""
        bookings = await Booking.filter(
            halls__id=hall_id,
            status__not_in=[BookingStatus.REJECTED],
        ).order_by("start_datetime")
        return [BookingSlot.model_validate(b, from_attributes=True) for b in bookings]

    # -----------------------------------------------------------------------
    # Documents
    # -----------------------------------------------------------------------

    async def add_document(
        self,
        booking_id: UUID,
        user_id: UUID,
        payload: DocumentCreate,
    ) -> DocumentResponse | None:
        booking = await Booking.get_or_none(id=booking_id, user_id=user_id)
        if not booking:
            return None
        if booking.status not in CUSTOMER_EDITABLE_STATUSES:
            raise ValidationError(
                "Documents can only be uploaded while the booking is pending "
                "or changes are requested."
            )

        doc = await BookingDocument.create(
            booking_id=booking_id,
            document_type=payload.document_type,
            document_name=payload.document_name,
            file_url=payload.file_url,
        )
        logger.info("Document {} ({}) added to booking {}", doc.id, doc.document_type, booking_id)
        return DocumentResponse.model_validate(doc, from_attributes=True)

    async def list_documents(self, booking_id: UUID) -> list[DocumentResponse]:
        docs = await BookingDocument.filter(booking_id=booking_id)
        return [DocumentResponse.model_validate(d, from_attributes=True) for d in docs]

    async def review_document(
        self,
        booking_id: UUID,
        document_id: UUID,
        status: str,
        reviewer_id: UUID,
    ) -> DocumentResponse | None:
        doc = await BookingDocument.get_or_none(id=document_id, booking_id=booking_id)
        if not doc:
            return None
        doc.status = DocumentStatus(status)
        doc.verified_at = datetime.now(timezone.utc)
        doc.verified_by = reviewer_id
        await doc.save(update_fields=["status", "verified_at", "verified_by"])
        return DocumentResponse.model_validate(doc, from_attributes=True)

    # -----------------------------------------------------------------------
    # Halls (read-only catalog)
    # -----------------------------------------------------------------------

    async def list_halls(self) -> list[HallResponse]:
        halls = await BanquetHall.filter(is_active=True).order_by("name")
        return [HallResponse.model_validate(h, from_attributes=True) for h in halls]

    async def get_hall(self, hall_id: UUID) -> HallResponse | None:
        hall = await BanquetHall.get_or_none(id=hall_id)
        if not hall:
            return None
        return HallResponse.model_validate(hall, from_attributes=True)


booking_crud = BookingCRUD()
