"""
Tire API Endpoints.

Mounting, wear recording and retirement of tires.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db, unit_of_work
from backend.app.core.config import settings
from backend.app.core.guards import require_role, require_admin
from backend.app.domain.fleet.tire_wear import TireWearTracker
from backend.app.domain.fleet.vehicle_ref import vehicle_ref
from backend.app.models.user_enums import UserRole
from backend.app.models.vehicle_enums import TireStatus, VehicleType
from backend.app.schemas.common import Envelope, PaginatedEnvelope, paginated
from backend.app.schemas.tire import TireCreate, TireUpdate, TireWearUpdate, TireResponse
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/tires", tags=["Fleet - Tires"])

any_fleet_user = require_role([UserRole.ADMIN, UserRole.DRIVER])


@router.post("", response_model=Envelope[TireResponse], status_code=status.HTTP_201_CREATED)
async def mount_tire(
    tire_data: TireCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Register a tire mounted on a truck or trailer."""
    data = tire_data.model_dump(exclude={"owner_type", "owner_id"})
    data["owner"] = vehicle_ref(tire_data.owner_type, tire_data.owner_id)

    async with unit_of_work(db):
        tire = await TireWearTracker(db).mount(data)
    await db.refresh(tire)

    await log_user_action(
        db, current_user, AuditAction.TIRE_MOUNTED, "tire", tire.id,
        {"serial_number": tire.serial_number, "owner_type": tire.owner_type.value, "owner_id": tire.owner_id}
    )
    return Envelope(data=TireResponse.model_validate(tire))


@router.get("", response_model=PaginatedEnvelope[TireResponse])
async def list_tires(
    status_filter: Optional[TireStatus] = Query(None, alias="status"),
    owner_type: Optional[VehicleType] = Query(None),
    owner_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="Serial number or brand"),
    include_retired: bool = Query(False),
    sort: Optional[str] = Query(None, description="Sort field, prefix with - for descending"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    result = await TireWearTracker(db).list_tires(
        status=status_filter,
        owner_type=owner_type,
        owner_id=owner_id,
        search=search,
        include_retired=include_retired,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    return paginated(result, TireResponse)


@router.get("/needing-replacement", response_model=Envelope[list[TireResponse]])
async def list_tires_needing_replacement(
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    tires = await TireWearTracker(db).list_by_status(TireStatus.NEED_REPLACEMENT)
    return Envelope(data=[TireResponse.model_validate(tire) for tire in tires])


@router.get("/warnings", response_model=Envelope[list[TireResponse]])
async def list_tires_in_warning(
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    tires = await TireWearTracker(db).list_by_status(TireStatus.WARNING)
    return Envelope(data=[TireResponse.model_validate(tire) for tire in tires])


@router.get("/{tire_id}", response_model=Envelope[TireResponse])
async def get_tire(
    tire_id: int = Path(..., description="Tire ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    tire = await TireWearTracker(db).get(tire_id)
    return Envelope(data=TireResponse.model_validate(tire))


@router.patch("/{tire_id}", response_model=Envelope[TireResponse])
async def update_tire(
    tire_data: TireUpdate,
    tire_id: int = Path(..., description="Tire ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        tire = await TireWearTracker(db).update_details(tire_id, tire_data.model_dump(exclude_unset=True))
    await db.refresh(tire)
    return Envelope(data=TireResponse.model_validate(tire))


@router.post("/{tire_id}/wear", response_model=Envelope[TireResponse])
async def record_tire_wear(
    wear_data: TireWearUpdate,
    tire_id: int = Path(..., description="Tire ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Record a new tire odometer reading; wear and status are recomputed."""
    async with unit_of_work(db):
        tire = await TireWearTracker(db).advance_wear(tire_id, wear_data.current_odometer)
    await db.refresh(tire)

    await log_user_action(
        db, current_user, AuditAction.TIRE_WEAR_RECORDED, "tire", tire.id,
        {"current_odometer": tire.current_odometer, "wear_percentage": tire.wear_percentage,
         "status": tire.status.value}
    )
    return Envelope(data=TireResponse.model_validate(tire))


@router.post("/{tire_id}/retire", response_model=Envelope[TireResponse])
async def retire_tire(
    tire_id: int = Path(..., description="Tire ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Unmount a tire permanently. It stays listed with include_retired."""
    async with unit_of_work(db):
        tire = await TireWearTracker(db).retire(tire_id)
    await db.refresh(tire)

    await log_user_action(db, current_user, AuditAction.TIRE_RETIRED, "tire", tire.id)
    return Envelope(data=TireResponse.model_validate(tire))
