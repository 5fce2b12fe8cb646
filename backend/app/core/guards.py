"""
Security guards for role-based and ownership-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.user_enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/routes")
        async def list_routes(current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.DRIVER]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency for admin-only endpoints (fleet registration, maintenance, route planning).

    Returns:
        User payload if admin, raises 403 otherwise
    """
    if current_user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") == UserRole.ADMIN.value


class RouteAccessGuard:
    """
    Ownership guard for routes.

    Admins may act on every route; a driver only on routes assigned to
    their own driver profile.

    Usage:
        route_guard = RouteAccessGuard()

        @router.post("/routes/{route_id}/start")
        async def start_route(route_id: int, current_user: dict = Depends(get_current_user), ...):
            route = await service.get(route_id)
            route_guard.enforce(await service.get_driver_user_id(route), current_user)
    """

    def can_access(self, driver_user_id: int, current_user: dict) -> bool:
        if is_admin(current_user):
            return True
        return (
            current_user.get("role") == UserRole.DRIVER.value
            and current_user.get("user_id") == driver_user_id
        )

    def enforce(self, driver_user_id: int, current_user: dict, resource_name: str = "route"):
        """
        Raise 403 unless current_user may act on a route driven by driver_user_id.
        """
        if not self.can_access(driver_user_id, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. You do not have permission to access this {resource_name}."
            )
