from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    RootModel,
    field_validator,
    model_validator,
)

from banquet_bookings.models import (
    AdminRole,
    BookingStatus,
    DocumentStatus,
    DocumentType,
    PaymentStatus,
)


class WorkflowActionType(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    REQUEST_PAYMENT = "request_payment"
    FORWARD_TO_ADMIN3 = "forward_to_admin3"


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    hall_ids: list[UUID] = Field(min_length=1)
    start_datetime: datetime
    end_datetime: datetime
    customer_name: str = Field(min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: str | None = Field(default=None, max_length=50)
    event_type: str | None = Field(default=None, max_length=100)
    guest_count: int | None = Field(default=None, ge=1)
    special_requests: str | None = Field(default=None, max_length=2000)

    @field_validator("start_datetime", "end_datetime", mode="after")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("datetime must be timezone-aware (include UTC offset)")
        return v.astimezone(timezone.utc)

    @field_validator("hall_ids", mode="after")
    @classmethod
    def dedupe_halls(cls, v: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_time_range(self) -> BookingCreate:
        if self.end_datetime <= self.start_datetime:
            raise ValueError("end_datetime must be after start_datetime")
        return self


class BookingCustomerUpdate(BaseModel):
    """Fields the customer may still edit before review starts."""

    customer_name: str | None = Field(default=None, min_length=1, max_length=200)
    customer_phone: str | None = Field(default=None, max_length=50)
    event_type: str | None = Field(default=None, max_length=100)
    guest_count: int | None = Field(default=None, ge=1)
    special_requests: str | None = Field(default=None, max_length=2000)


class BookingResponse(BaseModel):
    id: UUID
    user_id: UUID
    hall_ids: list[UUID]
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus
    total_amount: Decimal | None
    advance_amount: Decimal | None
    payment_status: PaymentStatus
    payment_date: datetime | None
    customer_name: str
    customer_email: str
    customer_phone: str | None
    event_type: str | None
    guest_count: int | None
    special_requests: str | None
    admin1_notes: str | None
    admin2_notes: str | None
    super_admin_notes: str | None
    confirmation_number: str | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingSlot(BaseModel):
    """Minimal occupied slot; reveals no user identity."""

    start_datetime: datetime
    end_datetime: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class PaymentConfirmation(BaseModel):
    amount: Decimal


# ---------------------------------------------------------------------------
# Workflow actions: one model per action, discriminated on "action"
# ---------------------------------------------------------------------------


class _ActionBase(BaseModel):
    notes: str = Field(default="", max_length=2000)
    # Version the caller loaded; a mismatch is reported as a conflict
    version: int | None = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")


class ApproveAction(_ActionBase):
    action: Literal["approve"] = "approve"


class RejectAction(_ActionBase):
    action: Literal["reject"] = "reject"


class RequestChangesAction(_ActionBase):
    action: Literal["request_changes"] = "request_changes"


class RequestPaymentAction(_ActionBase):
    action: Literal["request_payment"] = "request_payment"
    advance_amount: Decimal = Field(max_digits=12, decimal_places=2)


class ForwardToAdmin3Action(_ActionBase):
    action: Literal["forward_to_admin3"] = "forward_to_admin3"


WorkflowAction = Annotated[
    Union[
        ApproveAction,
        RejectAction,
        RequestChangesAction,
        RequestPaymentAction,
        ForwardToAdmin3Action,
    ],
    Field(discriminator="action"),
]


class WorkflowActionRequest(RootModel[WorkflowAction]):
    pass


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    id: UUID
    booking_id: UUID
    action: str
    previous_status: BookingStatus
    new_status: BookingStatus
    performed_by: UUID
    performed_by_role: AdminRole
    reason: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentCreate(BaseModel):
    document_type: DocumentType
    document_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1, max_length=1000)


class DocumentReview(BaseModel):
    status: Literal["verified", "rejected"]


class DocumentResponse(BaseModel):
    id: UUID
    booking_id: UUID
    document_type: DocumentType
    document_name: str
    file_url: str
    status: DocumentStatus
    uploaded_at: datetime
    verified_at: datetime | None
    verified_by: UUID | None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Halls
# ---------------------------------------------------------------------------


class HallResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    capacity: int
    price_per_hour: Decimal
    amenities: list[str]
    images: list[str]
    panorama_url: str | None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Role management: one model per action, discriminated on "action"
# ---------------------------------------------------------------------------


class CreateAdminRequest(BaseModel):
    action: Literal["create"] = "create"
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=200)
    role: AdminRole


class AssignRoleRequest(BaseModel):
    action: Literal["assign_role"] = "assign_role"
    user_id: UUID
    role: AdminRole


class UpdateRoleRequest(BaseModel):
    action: Literal["update_role"] = "update_role"
    user_id: UUID
    role: AdminRole


class RemoveRoleRequest(BaseModel):
    action: Literal["remove_role"] = "remove_role"
    user_id: UUID


class SearchUsersRequest(BaseModel):
    action: Literal["search_users"] = "search_users"
    search_term: str = Field(default="", max_length=200)


AdminUserAction = Annotated[
    Union[
        CreateAdminRequest,
        AssignRoleRequest,
        UpdateRoleRequest,
        RemoveRoleRequest,
        SearchUsersRequest,
    ],
    Field(discriminator="action"),
]


class AdminUserRequest(RootModel[AdminUserAction]):
    pass


class UserWithRole(BaseModel):
    user_id: UUID
    full_name: str
    email: str
    role: AdminRole | None = None


class RoleResponse(BaseModel):
    user_id: UUID
    role: AdminRole | None
