from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class BookingError(Exception):
    """Base for every failure the workflow and role directory report to callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthorizationError(BookingError):
    """Actor has no role, or its role may not perform this action now."""

    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(BookingError):
    """Payload is incomplete or malformed; raised before anything is written."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(BookingError):
    """The booking changed since it was loaded."""

    status_code = status.HTTP_409_CONFLICT


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(BookingError):
    """The store rejected or failed the write. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UpstreamError(BookingError):
    """A collaborating service (e.g. users-ms) failed or was unreachable."""

    status_code = status.HTTP_502_BAD_GATEWAY


async def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
