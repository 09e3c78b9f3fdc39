from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes; reviewer permissions come from admin roles, not scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # create a booking, edit details, upload documents
    PAY = "bookings:pay"  # confirm the advance payment on own booking


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own bookings.",
    BookingScope.WRITE: "Request a hall booking and manage its details and documents.",
    BookingScope.PAY: "Pay the advance requested for your booking.",
}
