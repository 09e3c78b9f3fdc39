from fastapi import APIRouter, Depends

from banquet_bookings.deps import (
    CurrentUser,
    UsersClient,
    get_acting_role,
    get_current_user,
    get_users_client,
    require_super_admin,
)
from banquet_bookings.models import AdminRole
from banquet_bookings.roles import role_directory
from banquet_bookings.schemas import (
    AdminUserRequest,
    AssignRoleRequest,
    CreateAdminRequest,
    RemoveRoleRequest,
    RoleResponse,
    UpdateRoleRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/me", response_model=RoleResponse)
async def get_my_role(
    current_user: CurrentUser = Depends(get_current_user),
    acting_role: AdminRole | None = Depends(get_acting_role),
) -> RoleResponse:
    return RoleResponse(user_id=current_user.id, role=acting_role)


@router.post("/users")
async def manage_admin_users(
    payload: AdminUserRequest,
    current_user: CurrentUser = Depends(require_super_admin),
    users_client: UsersClient = Depends(get_users_client),
) -> dict:
    """
    Single entry point for admin account management, switched on `action`.
    Failures come back as {"error": "..."} with a 4xx/5xx status.
    """
    request = payload.root

    if isinstance(request, CreateAdminRequest):
        user = await role_directory.create_admin(
            email=str(request.email),
            password=request.password,
            full_name=request.full_name,
            role=request.role,
            requested_by=current_user.id,
            users_client=users_client,
        )
        return {"success": True, "user": user}

    if isinstance(request, AssignRoleRequest):
        await role_directory.assign(request.user_id, request.role, current_user.id)
        return {"success": True, "message": "Role assigned successfully"}

    if isinstance(request, UpdateRoleRequest):
        await role_directory.update(request.user_id, request.role, current_user.id)
        return {"success": True, "message": "Role updated successfully"}

    if isinstance(request, RemoveRoleRequest):
        await role_directory.remove(request.user_id, current_user.id)
        return {"success": True, "message": "Role removed successfully"}

    # search_users
    users = await role_directory.search_users(request.search_term)
    return {"users": [u.model_dump(mode="json") for u in users]}
