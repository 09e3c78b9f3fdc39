from enum import StrEnum

from tortoise import fields
from tortoise.models import Model


class BookingStatus(StrEnum):
    PENDING = "pending"  # submitted, awaiting admin1 document check
    CHANGE_REQUESTED = "change_requested"  # sent back to the customer
    DOCUMENT_REVIEW = "document_review"  # documents approved, awaiting admin2
    AVAILABILITY_CHECK = "availability_check"  # admin2 verifying availability
    PAYMENT_PENDING = "payment_pending"  # advance payment requested
    PAYMENT_COMPLETED = "payment_completed"  # virtual marker, never stored
    FINAL_APPROVAL = "final_approval"  # awaiting admin3 / super_admin
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PAID = "paid"


class AdminRole(StrEnum):
    ADMIN1 = "admin1"  # document verification
    ADMIN2 = "admin2"  # availability and payment
    ADMIN3 = "admin3"  # final approval
    SUPER_ADMIN = "super_admin"


class DocumentType(StrEnum):
    AADHAAR = "aadhaar"
    DRIVING_LICENSE = "driving_license"
    PASSPORT = "passport"
    OTHER = "other"


class DocumentStatus(StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class TimestampedModel(Model):
    id = fields.UUIDField(primary_key=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:  # type: ignore
        abstract = True


class BanquetHall(TimestampedModel):
    name = fields.CharField(max_length=200)
    description = fields.TextField(null=True)
    capacity = fields.IntField()
    price_per_hour = fields.DecimalField(max_digits=10, decimal_places=2)
    amenities = fields.JSONField(default=list)
    images = fields.JSONField(default=list)
    panorama_url = fields.CharField(max_length=500, null=True)
    is_active = fields.BooleanField(default=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "banquet_halls"
        ordering = ["name"]


class Booking(TimestampedModel):
    user_id = fields.UUIDField()  # the customer who made the booking

    start_datetime = fields.DatetimeField()
    end_datetime = fields.DatetimeField()
    halls: fields.ManyToManyRelation[BanquetHall] = fields.ManyToManyField(
        "models.BanquetHall", related_name="bookings", through="booking_halls"
    )

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)

    total_amount = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    advance_amount = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.UNPAID)
    payment_date = fields.DatetimeField(null=True)

    customer_name = fields.CharField(max_length=200)
    customer_email = fields.CharField(max_length=255)
    customer_phone = fields.CharField(max_length=50, null=True)
    event_type = fields.CharField(max_length=100, null=True)
    guest_count = fields.IntField(null=True)
    special_requests = fields.TextField(null=True)

    admin1_notes = fields.TextField(null=True)
    admin2_notes = fields.TextField(null=True)
    super_admin_notes = fields.TextField(null=True)
    confirmation_number = fields.CharField(max_length=32, null=True, unique=True)

    version = fields.IntField(default=1)  # bumped on every workflow write
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class BookingDocument(TimestampedModel):
    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="documents", on_delete=fields.CASCADE
    )
    document_type = fields.CharEnumField(DocumentType)
    document_name = fields.CharField(max_length=255)
    file_url = fields.CharField(max_length=1000)
    status = fields.CharEnumField(DocumentStatus, default=DocumentStatus.PENDING)
    uploaded_at = fields.DatetimeField(auto_now_add=True)
    verified_at = fields.DatetimeField(null=True)
    verified_by = fields.UUIDField(null=True)

    class Meta:  # type: ignore
        table = "booking_documents"
        ordering = ["uploaded_at"]


class AuditLogEntry(TimestampedModel):
    """Append-only: rows are inserted by the workflow and never touched again."""

    booking: fields.ForeignKeyRelation[Booking] = fields.ForeignKeyField(
        "models.Booking", related_name="audit_entries", on_delete=fields.CASCADE
    )
    action = fields.CharField(max_length=100)
    previous_status = fields.CharEnumField(BookingStatus)
    new_status = fields.CharEnumField(BookingStatus)
    performed_by = fields.UUIDField()
    performed_by_role = fields.CharEnumField(AdminRole)
    reason = fields.TextField(null=True)

    class Meta:  # type: ignore
        table = "audit_logs"
        ordering = ["-created_at"]


class UserRole(TimestampedModel):
    user_id = fields.UUIDField(unique=True)
    role = fields.CharEnumField(AdminRole)
    created_by = fields.UUIDField(null=True)

    class Meta:  # type: ignore
        table = "user_roles"


class Profile(TimestampedModel):
    user_id = fields.UUIDField(unique=True)
    full_name = fields.CharField(max_length=200)
    email = fields.CharField(max_length=255)

    class Meta:  # type: ignore
        table = "profiles"
        ordering = ["full_name"]
