"""
Admin API Endpoints.

Provides admin-only user management and the audit trail.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.fleet.pagination import Page, paginate
from backend.app.models.driver import Driver
from backend.app.models.user_enums import UserRole
from backend.app.models.user import User
from backend.app.schemas.admin import AdminUserResponse, AccountStatusRequest, AuditLogResponse
from backend.app.schemas.common import Envelope, PaginatedEnvelope, paginated
from backend.app.core.guards import require_admin
from backend.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from backend.app.services.audit import log_user_action, AuditAction, get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


async def _admin_view(db: AsyncSession, users: list) -> list:
    """Attach the driver profile id of each account."""
    user_ids = [user.id for user in users]
    driver_ids = {}
    if user_ids:
        rows = await db.execute(select(Driver.user_id, Driver.id).where(Driver.user_id.in_(user_ids)))
        driver_ids = dict(rows.all())
    return [
        AdminUserResponse.model_validate(user).model_copy(update={"driver_id": driver_ids.get(user.id)})
        for user in users
    ]


@router.get("/users", response_model=PaginatedEnvelope[AdminUserResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users in the system (admin-only).
    """
    query = select(User)
    if role:
        query = query.where(User.role == role)
    if is_active is not None:
        query = query.where(User.is_active == is_active)
    query = query.order_by(User.created_at.desc(), User.id.desc())

    result = await paginate(db, query, page, page_size)
    items = await _admin_view(db, result.items)
    return paginated(Page(items, result.total, result.page, result.page_size), AdminUserResponse)


@router.get("/users/{user_id}", response_model=Envelope[AdminUserResponse])
async def get_user(
    user_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    user = await _get_user(db, user_id)
    [view] = await _admin_view(db, [user])
    return Envelope(data=view)


@router.post("/users/{user_id}/block", response_model=Envelope[AdminUserResponse])
async def block_user(
    user_id: int,
    request: AccountStatusRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Block a user and revoke all their active tokens (admin-only).

    This immediately terminates all user sessions.
    """
    target_user = await _get_user(db, user_id)

    if target_user.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot block an admin user"
        )

    if not target_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already blocked"
        )

    target_user.is_active = False
    await db.commit()
    await db.refresh(target_user)

    await revoke_all_user_tokens(user_id)

    await log_user_action(
        db, admin, AuditAction.USER_BLOCKED, "user", target_user.id,
        {"username": target_user.username, "reason": request.reason}
    )
    [view] = await _admin_view(db, [target_user])
    return Envelope(data=view)


@router.post("/users/{user_id}/unblock", response_model=Envelope[AdminUserResponse])
async def unblock_user(
    user_id: int,
    request: AccountStatusRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Unblock a user and clear token revocations (admin-only).

    The user can log in again and obtain new tokens.
    """
    target_user = await _get_user(db, user_id)

    if target_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already active"
        )

    target_user.is_active = True
    await db.commit()
    await db.refresh(target_user)

    await clear_user_token_revocation(user_id)

    await log_user_action(
        db, admin, AuditAction.USER_UNBLOCKED, "user", target_user.id,
        {"username": target_user.username, "reason": request.reason}
    )
    [view] = await _admin_view(db, [target_user])
    return Envelope(data=view)


@router.get("/audit", response_model=Envelope[list[AuditLogResponse]])
async def audit_trail(
    entity_type: Optional[str] = Query(None, description="route, truck, tire, ..."),
    entity_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Most recent audit entries, optionally for one record or one action."""
    logs = await get_audit_trail(db, entity_type=entity_type, entity_id=entity_id, action=action, limit=limit)
    return Envelope(data=[AuditLogResponse.model_validate(log) for log in logs])
