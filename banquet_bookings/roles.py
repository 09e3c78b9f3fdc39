from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from loguru import logger
from tortoise.exceptions import IntegrityError, OperationalError
from tortoise.expressions import Q

from banquet_bookings.exceptions import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from banquet_bookings.models import AdminRole, Profile, UserRole
from banquet_bookings.schemas import RoleResponse, UserWithRole

if TYPE_CHECKING:
    from banquet_bookings.deps import UsersClient

SUPER_ADMIN_REQUIRED = "Only super admins can manage admin accounts"
ALREADY_HAS_ROLE = "User already has an admin role. Use update_role to change it."
SEARCH_LIMIT = 20


class RoleDirectory:
    """
    Maps user ids to at most one AdminRole. Every mutation requires the
    requester to currently hold super_admin.
    """

    async def role_of(self, user_id: UUID) -> AdminRole | None:
        inst = await UserRole.get_or_none(user_id=user_id)
        return AdminRole(inst.role) if inst else None

    async def _require_super_admin(self, requested_by: UUID) -> None:
        if await self.role_of(requested_by) != AdminRole.SUPER_ADMIN:
            logger.warning("Role change refused for non-super-admin {}", requested_by)
            raise AuthorizationError(SUPER_ADMIN_REQUIRED)

    async def assign(
        self, target_user_id: UUID, role: AdminRole, requested_by: UUID
    ) -> RoleResponse:
        await self._require_super_admin(requested_by)
        if await UserRole.filter(user_id=target_user_id).exists():
            raise ValidationError(ALREADY_HAS_ROLE)

        try:
            await UserRole.create(
                user_id=target_user_id, role=role, created_by=requested_by
            )
        except IntegrityError as exc:
            # lost a race with a concurrent assign for the same user
            raise ValidationError(ALREADY_HAS_ROLE) from exc

        logger.info("Role {} assigned to {} by {}", role, target_user_id, requested_by)
        return RoleResponse(user_id=target_user_id, role=role)

    async def update(
        self, target_user_id: UUID, role: AdminRole, requested_by: UUID
    ) -> RoleResponse:
        await self._require_super_admin(requested_by)
        if target_user_id == requested_by and role != AdminRole.SUPER_ADMIN:
            raise AuthorizationError("Super admins cannot demote themselves.")

        updated = await UserRole.filter(user_id=target_user_id).update(role=role)
        if not updated:
            raise NotFoundError("User has no admin role to update.")

        logger.info("Role of {} changed to {} by {}", target_user_id, role, requested_by)
        return RoleResponse(user_id=target_user_id, role=role)

    async def remove(self, target_user_id: UUID, requested_by: UUID) -> None:
        await self._require_super_admin(requested_by)
        if target_user_id == requested_by:
            raise AuthorizationError("Super admins cannot remove their own role.")

        deleted = await UserRole.filter(user_id=target_user_id).delete()
        if not deleted:
            raise NotFoundError("User has no admin role to remove.")

        logger.info("Role of {} removed by {}", target_user_id, requested_by)

    async def bootstrap(self, user_id: UUID) -> RoleResponse:
        """Grant the first super_admin. Refused once any super_admin exists."""
        if await UserRole.filter(role=AdminRole.SUPER_ADMIN).exists():
            raise AuthorizationError("A super admin already exists.")

        await UserRole.update_or_create(
            defaults={"role": AdminRole.SUPER_ADMIN}, user_id=user_id
        )
        logger.info("Bootstrapped super admin {}", user_id)
        return RoleResponse(user_id=user_id, role=AdminRole.SUPER_ADMIN)

    async def search_users(self, search_term: str = "") -> list[UserWithRole]:
        """Profiles matching email or name, each with its current role (or None)."""
        qs = Profile.all()
        term = search_term.strip()
        if term:
            qs = qs.filter(Q(email__icontains=term) | Q(full_name__icontains=term))
        profiles = await qs.limit(SEARCH_LIMIT)

        roles = {
            r.user_id: AdminRole(r.role)
            for r in await UserRole.filter(user_id__in=[p.user_id for p in profiles])
        }
        return [
            UserWithRole(
                user_id=p.user_id,
                full_name=p.full_name,
                email=p.email,
                role=roles.get(p.user_id),
            )
            for p in profiles
        ]

    async def create_admin(
        self,
        email: str,
        password: str,
        full_name: str,
        role: AdminRole,
        requested_by: UUID,
        users_client: UsersClient,
    ) -> dict:
        """
        Register a new account with the users service, store its profile and
        assign `role`. The account is not rolled back if the role write fails.
        """
        await self._require_super_admin(requested_by)

        user = await users_client.create_user(
            email=email, password=password, full_name=full_name
        )
        user_id = UUID(str(user["id"]))

        try:
            await Profile.update_or_create(
                defaults={"full_name": full_name, "email": email}, user_id=user_id
            )
            await UserRole.create(user_id=user_id, role=role, created_by=requested_by)
        except (IntegrityError, OperationalError) as exc:
            logger.exception("Role assignment failed for new account {}", user_id)
            raise PersistenceError(
                f"User created but role assignment failed: {exc}"
            ) from exc

        logger.info("Admin account {} ({}) created by {}", user_id, role, requested_by)
        return {"id": str(user_id), "email": email, "role": role.value}


role_directory = RoleDirectory()
