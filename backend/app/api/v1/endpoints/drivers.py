"""
Driver API Endpoints.

Driver profiles link a DRIVER user account to a license number. Routes are
assigned to driver profiles.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from backend.app.db.session import get_db, unit_of_work
from backend.app.core.config import settings
from backend.app.core.exceptions import DuplicateKeyError, DomainValidationError, InvalidStateError, ResourceNotFoundError
from backend.app.core.guards import require_role, require_admin
from backend.app.core.security import get_password_hash
from backend.app.domain.fleet.pagination import paginate
from backend.app.domain.fleet.vehicle_registry import canonical_key
from backend.app.models.driver import Driver
from backend.app.models.user_enums import UserRole
from backend.app.models.route import Route
from backend.app.models.user import User
from backend.app.schemas.common import Envelope, PaginatedEnvelope, MessageResponse, paginated
from backend.app.schemas.driver import DriverCreate, DriverUpdate, DriverResponse
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/drivers", tags=["Fleet - Drivers"])


async def _get_driver(db: AsyncSession, driver_id: int) -> Driver:
    driver = await db.get(Driver, driver_id)
    if not driver:
        raise ResourceNotFoundError("Driver", driver_id)
    return driver


async def _resolve_user(db: AsyncSession, driver_data: DriverCreate) -> User:
    """Existing DRIVER account by user_id, or a new one from the supplied credentials."""
    if driver_data.user_id is not None:
        user = await db.get(User, driver_data.user_id)
        if not user:
            raise ResourceNotFoundError("User", driver_data.user_id)
        if user.role != UserRole.DRIVER:
            raise DomainValidationError("Driver profiles can only be linked to DRIVER accounts",
                                        {"user_id": user.id, "role": user.role.value})
        linked = await db.execute(select(Driver.id).where(Driver.user_id == user.id))
        if linked.scalar_one_or_none() is not None:
            raise DuplicateKeyError("Driver", "user_id", user.id)
        return user

    if not (driver_data.email and driver_data.username and driver_data.password):
        raise DomainValidationError("Provide user_id, or email, username and password for a new account")

    existing = await db.execute(
        select(User.id).where(or_(User.username == driver_data.username, User.email == driver_data.email))
    )
    if existing.scalars().first() is not None:
        raise DuplicateKeyError("User", "username/email", driver_data.username)

    user = User(
        email=driver_data.email,
        username=driver_data.username,
        full_name=driver_data.full_name,
        hashed_password=get_password_hash(driver_data.password),
        role=UserRole.DRIVER,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@router.post("", response_model=Envelope[DriverResponse], status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a driver profile (Admin only)."""
    license_number = canonical_key(driver_data.license_number)

    async with unit_of_work(db):
        existing = await db.execute(select(Driver.id).where(Driver.license_number == license_number))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateKeyError("Driver", "license_number", license_number)

        user = await _resolve_user(db, driver_data)
        driver = Driver(user_id=user.id, license_number=license_number, phone=driver_data.phone)
        db.add(driver)
        await db.flush()
    await db.refresh(driver)

    await log_user_action(
        db, current_user, AuditAction.DRIVER_CREATED, "driver", driver.id,
        {"license_number": driver.license_number, "user_id": driver.user_id}
    )
    return Envelope(data=DriverResponse.model_validate(driver))


@router.get("", response_model=PaginatedEnvelope[DriverResponse])
async def list_drivers(
    search: Optional[str] = Query(None, description="License number"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    query = select(Driver)
    if search:
        query = query.where(Driver.license_number.ilike(f"%{search.strip()}%"))
    query = query.order_by(Driver.created_at.desc(), Driver.id.desc())
    result = await paginate(db, query, page, page_size)
    return paginated(result, DriverResponse)


@router.get("/me", response_model=Envelope[DriverResponse])
async def get_own_driver_profile(
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Driver profile of the authenticated driver."""
    result = await db.execute(select(Driver).where(Driver.user_id == current_user["user_id"]))
    driver = result.scalar_one_or_none()
    if not driver:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No driver profile for this account"
        )
    return Envelope(data=DriverResponse.model_validate(driver))


@router.get("/{driver_id}", response_model=Envelope[DriverResponse])
async def get_driver(
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    driver = await _get_driver(db, driver_id)
    return Envelope(data=DriverResponse.model_validate(driver))


@router.patch("/{driver_id}", response_model=Envelope[DriverResponse])
async def update_driver(
    driver_data: DriverUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    changes = driver_data.model_dump(exclude_unset=True)
    async with unit_of_work(db):
        driver = await _get_driver(db, driver_id)
        if "phone" in changes:
            driver.phone = changes["phone"]
        if "full_name" in changes:
            user = await db.get(User, driver.user_id)
            user.full_name = changes["full_name"]
        await db.flush()
    await db.refresh(driver)

    await log_user_action(
        db, current_user, AuditAction.DRIVER_UPDATED, "driver", driver.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=DriverResponse.model_validate(driver))


@router.delete("/{driver_id}", response_model=MessageResponse)
async def delete_driver(
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a driver profile that no route references. The user account is kept."""
    async with unit_of_work(db):
        driver = await _get_driver(db, driver_id)
        routes = await db.execute(select(func.count(Route.id)).where(Route.driver_id == driver_id))
        if routes.scalar():
            raise InvalidStateError(f"Driver {driver_id} is referenced by existing routes")
        await db.delete(driver)
        await db.flush()

    await log_user_action(db, current_user, AuditAction.DRIVER_DELETED, "driver", driver_id)
    return MessageResponse(message=f"Driver {driver_id} deleted")
