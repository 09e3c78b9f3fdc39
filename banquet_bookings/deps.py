from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from loguru import logger

from banquet_bookings import settings
from banquet_bookings.exceptions import AuthorizationError, UpstreamError, ValidationError
from banquet_bookings.models import AdminRole
from banquet_bookings.roles import SUPER_ADMIN_REQUIRED, role_directory
from banquet_bookings.scopes import BOOKING_SCOPE_DESCRIPTIONS, BookingScope


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by the gateway after token validation.
    The JWT has already been verified; we just trust these headers.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("bookings:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            described = ", ".join(
                f"{s} ({BOOKING_SCOPE_DESCRIPTIONS[s]})"
                if s in BOOKING_SCOPE_DESCRIPTIONS
                else s
                for s in missing
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {described}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(BookingScope.WRITE)
can_pay_booking = require_scopes(BookingScope.PAY)


# ---------------------------------------------------------------------------
# Admin roles, resolved per request from the role directory
# ---------------------------------------------------------------------------


async def get_acting_role(
    current_user: CurrentUser = Depends(get_current_user),
) -> AdminRole | None:
    """The caller's admin role, or None for customers."""
    return await role_directory.role_of(current_user.id)


async def can_read_bookings(
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> CurrentUser:
    """
    Passes for customers holding bookings:read (own bookings only)
    and for any admin role (all bookings).
    """
    if acting_role is None and BookingScope.READ not in current_user.scopes:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires '{BookingScope.READ}' scope or an admin role.",
        )
    return current_user


async def require_super_admin(
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> CurrentUser:
    if acting_role != AdminRole.SUPER_ADMIN:
        raise AuthorizationError(SUPER_ADMIN_REQUIRED)
    return current_user


# ---------------------------------------------------------------------------
# UsersClient: thin async wrapper around users-ms internal API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_users_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.users_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class UsersClient:
    """
    Thin async wrapper around the users-ms internal API.
    Used by super admins to register new reviewer accounts.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_users_http_client()

    async def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
    ) -> dict:
        """
        Create a confirmed account. Returns the users-ms user dict.
        Raises ValidationError on 4xx (e.g. email taken), UpstreamError otherwise.
        """
        try:
            resp = await self._client.post(
                "/users",
                json={
                    "email": email,
                    "password": password,
                    "full_name": full_name,
                    "email_confirmed": True,
                },
            )
        except httpx.RequestError as exc:
            logger.error("users-ms unreachable while creating {}: {}", email, exc)
            raise UpstreamError("The users service is unavailable.") from exc

        if 400 <= resp.status_code < 500:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            raise ValidationError(str(detail) or "The account could not be created.")
        if resp.status_code >= 500:
            raise UpstreamError(f"users-ms returned {resp.status_code}")
        return resp.json()


_users_client = UsersClient()


def get_users_client() -> UsersClient:
    return _users_client
