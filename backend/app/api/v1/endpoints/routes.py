"""
Route API Endpoints.

Route planning (Admin) and the start/complete/cancel lifecycle. A driver
may read and operate only the routes assigned to their own profile.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.guards import require_role, require_admin, is_admin, RouteAccessGuard
from backend.app.domain.fleet.pagination import Page
from backend.app.domain.fleet.route_lifecycle import RouteLifecycleService
from backend.app.models.driver import Driver
from backend.app.models.user_enums import UserRole
from backend.app.models.route_enums import RouteStatus
from backend.app.schemas.common import Envelope, PaginatedEnvelope, MessageResponse, paginated
from backend.app.schemas.route import (
    RouteCreate, RouteUpdate, RouteStart, RouteComplete, RouteCancel,
    RouteResponse, RouteCompletionResponse, VehicleOdometerSnapshot,
)
from backend.app.schemas.tire import TireWearSnapshot
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/routes", tags=["Fleet - Routes"])
route_guard = RouteAccessGuard()

any_fleet_user = require_role([UserRole.ADMIN, UserRole.DRIVER])


async def _own_driver_id(db: AsyncSession, user_id: int) -> Optional[int]:
    result = await db.execute(select(Driver.id).where(Driver.user_id == user_id))
    return result.scalar_one_or_none()


async def _load_accessible_route(service: RouteLifecycleService, route_id: int, current_user: dict):
    route = await service.get(route_id)
    if not is_admin(current_user):
        route_guard.enforce(await service.get_driver_user_id(route), current_user)
    return route


@router.post("", response_model=Envelope[RouteResponse], status_code=status.HTTP_201_CREATED)
async def create_route(
    route_data: RouteCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Plan a route (Admin only).

    Route numbers are unique regardless of case. The truck does not need
    to be available yet; that is checked when the route starts.
    """
    route = await RouteLifecycleService(db).create(route_data.model_dump())
    await db.refresh(route)

    await log_user_action(
        db, current_user, AuditAction.ROUTE_CREATED, "route", route.id,
        {"route_number": route.route_number, "truck_id": route.truck_id, "driver_id": route.driver_id}
    )
    return Envelope(data=RouteResponse.model_validate(route))


@router.get("", response_model=PaginatedEnvelope[RouteResponse])
async def list_routes(
    status_filter: Optional[RouteStatus] = Query(None, alias="status"),
    driver_id: Optional[int] = Query(None),
    truck_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="Route number or location"),
    sort: Optional[str] = Query(None, description="Sort field, prefix with - for descending"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List routes. Admins see every route, drivers only their own.
    """
    if not is_admin(current_user):
        driver_id = await _own_driver_id(db, current_user["user_id"])
        if driver_id is None:
            return paginated(Page(items=[], total=0, page=page, page_size=page_size), RouteResponse)

    result = await RouteLifecycleService(db).list_routes(
        status=status_filter,
        driver_id=driver_id,
        truck_id=truck_id,
        search=search,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    return paginated(result, RouteResponse)


@router.get("/{route_id}", response_model=Envelope[RouteResponse])
async def get_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    route = await _load_accessible_route(RouteLifecycleService(db), route_id, current_user)
    return Envelope(data=RouteResponse.model_validate(route))


@router.patch("/{route_id}", response_model=Envelope[RouteResponse])
async def update_route(
    route_data: RouteUpdate,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a route that has not finished.

    Odometer readings and status are not editable here; driver and truck
    can only be reassigned while the route is PLANNED.
    """
    changes = route_data.model_dump(exclude_unset=True)
    route = await RouteLifecycleService(db).update(route_id, changes)
    await db.refresh(route)

    await log_user_action(
        db, current_user, AuditAction.ROUTE_UPDATED, "route", route.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=RouteResponse.model_validate(route))


@router.delete("/{route_id}", response_model=MessageResponse)
async def delete_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a route. Refused while the route is in progress."""
    await RouteLifecycleService(db).delete(route_id)

    await log_user_action(db, current_user, AuditAction.ROUTE_DELETED, "route", route_id)
    return MessageResponse(message=f"Route {route_id} deleted")


@router.post("/{route_id}/start", response_model=Envelope[RouteResponse])
async def start_route(
    start_data: RouteStart,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a PLANNED route: records the departure odometer and puts the truck IN_ROUTE.
    """
    service = RouteLifecycleService(db)
    await _load_accessible_route(service, route_id, current_user)

    route = await service.start(route_id, start_data.departure_odometer)
    await db.refresh(route)

    await log_user_action(
        db, current_user, AuditAction.ROUTE_STARTED, "route", route.id,
        {"departure_odometer": route.departure_odometer, "truck_id": route.truck_id}
    )
    return Envelope(data=RouteResponse.model_validate(route))


@router.post("/{route_id}/complete", response_model=Envelope[RouteCompletionResponse])
async def complete_route(
    complete_data: RouteComplete,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Complete an IN_PROGRESS route.

    The distance driven advances the truck, its attached trailer and every
    mounted tire in one transaction; the truck becomes AVAILABLE again.
    """
    service = RouteLifecycleService(db)
    await _load_accessible_route(service, route_id, current_user)

    result = await service.complete(
        route_id,
        complete_data.arrival_odometer,
        fuel_volume=complete_data.fuel_volume,
        fuel_cost=complete_data.fuel_cost,
        remarks=complete_data.remarks,
    )
    route = result.route
    await db.refresh(route)

    await log_user_action(
        db, current_user, AuditAction.ROUTE_COMPLETED, "route", route.id,
        {
            "arrival_odometer": route.arrival_odometer,
            "actual_distance": route.actual_distance,
            "fuel_volume": route.fuel_volume,
            "tires_advanced": len(result.tires),
        }
    )
    return Envelope(data=RouteCompletionResponse(
        route=RouteResponse.model_validate(route),
        truck=VehicleOdometerSnapshot.model_validate(result.truck),
        trailer=VehicleOdometerSnapshot.model_validate(result.trailer) if result.trailer else None,
        tires=[TireWearSnapshot.model_validate(tire) for tire in result.tires],
    ))


@router.post("/{route_id}/cancel", response_model=Envelope[RouteResponse])
async def cancel_route(
    cancel_data: RouteCancel,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a PLANNED or IN_PROGRESS route; a truck on the road is released."""
    service = RouteLifecycleService(db)
    await _load_accessible_route(service, route_id, current_user)

    route = await service.cancel(route_id, cancel_data.reason)
    await db.refresh(route)

    await log_user_action(
        db, current_user, AuditAction.ROUTE_CANCELLED, "route", route.id,
        {"reason": cancel_data.reason}
    )
    return Envelope(data=RouteResponse.model_validate(route))
