"""
Truck and Trailer API Endpoints.

Registration and administration of the fleet's vehicles. Mutations are
admin-only; drivers may read.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db, unit_of_work
from backend.app.core.config import settings
from backend.app.core.guards import require_role, require_admin
from backend.app.domain.fleet.tire_wear import TireWearTracker
from backend.app.domain.fleet.vehicle_ref import TrailerRef, TruckRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry
from backend.app.models.user_enums import UserRole
from backend.app.models.trailer import Trailer
from backend.app.models.truck import Truck
from backend.app.models.vehicle_enums import VehicleStatus
from backend.app.schemas.common import Envelope, PaginatedEnvelope, MessageResponse, paginated
from backend.app.schemas.tire import TireResponse
from backend.app.schemas.vehicle import (
    TruckCreate, TruckUpdate, TruckResponse,
    TrailerCreate, TrailerUpdate, TrailerResponse,
    OdometerUpdate, StatusUpdate, TrailerAttach,
)
from backend.app.services.audit import log_user_action, AuditAction

trucks_router = APIRouter(prefix="/trucks", tags=["Fleet - Trucks"])
trailers_router = APIRouter(prefix="/trailers", tags=["Fleet - Trailers"])

any_fleet_user = require_role([UserRole.ADMIN, UserRole.DRIVER])


# Trucks

@trucks_router.post("", response_model=Envelope[TruckResponse], status_code=status.HTTP_201_CREATED)
async def create_truck(
    truck_data: TruckCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Register a truck. Registration numbers are unique regardless of case."""
    registry = VehicleRegistry(db)
    async with unit_of_work(db):
        truck = await registry.register_truck(truck_data.model_dump())
    await db.refresh(truck)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_CREATED, "truck", truck.id,
        {"registration_number": truck.registration_number}
    )
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.get("", response_model=PaginatedEnvelope[TruckResponse])
async def list_trucks(
    status_filter: Optional[VehicleStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Registration number or model"),
    sort: Optional[str] = Query(None, description="Sort field, prefix with - for descending"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    result = await VehicleRegistry(db).list_vehicles(Truck, status_filter, search, sort, page, page_size)
    return paginated(result, TruckResponse)


@trucks_router.get("/{truck_id}", response_model=Envelope[TruckResponse])
async def get_truck(
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    truck = await VehicleRegistry(db).get_by_id(TruckRef(truck_id))
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.patch("/{truck_id}", response_model=Envelope[TruckResponse])
async def update_truck(
    truck_data: TruckUpdate,
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Update descriptive fields. Odometer and status have their own endpoints."""
    changes = truck_data.model_dump(exclude_unset=True)
    async with unit_of_work(db):
        truck = await VehicleRegistry(db).update_details(TruckRef(truck_id), changes)
    await db.refresh(truck)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_UPDATED, "truck", truck.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.delete("/{truck_id}", response_model=MessageResponse)
async def delete_truck(
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a truck that has no routes and no mounted tires."""
    async with unit_of_work(db):
        await VehicleRegistry(db).delete(TruckRef(truck_id))

    await log_user_action(db, current_user, AuditAction.VEHICLE_DELETED, "truck", truck_id)
    return MessageResponse(message=f"Truck {truck_id} deleted")


@trucks_router.post("/{truck_id}/odometer", response_model=Envelope[TruckResponse])
async def advance_truck_odometer(
    reading: OdometerUpdate,
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Record a manual odometer reading. Readings never go backwards."""
    registry = VehicleRegistry(db)
    async with unit_of_work(db):
        truck = await registry.get_by_id(TruckRef(truck_id), for_update=True)
        previous = truck.current_odometer
        await registry.advance_odometer(TruckRef(truck_id), reading.odometer)
    await db.refresh(truck)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_ODOMETER_ADVANCED, "truck", truck.id,
        {"from": previous, "to": truck.current_odometer}
    )
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.patch("/{truck_id}/status", response_model=Envelope[TruckResponse])
async def change_truck_status(
    status_data: StatusUpdate,
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Put a truck in or out of service. IN_ROUTE is only set by starting a route."""
    async with unit_of_work(db):
        truck = await VehicleRegistry(db).change_status(TruckRef(truck_id), status_data.status)
    await db.refresh(truck)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_STATUS_CHANGED, "truck", truck.id,
        {"status": truck.status.value}
    )
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.post("/{truck_id}/trailer", response_model=Envelope[TruckResponse])
async def attach_trailer(
    attach_data: TrailerAttach,
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        truck = await VehicleRegistry(db).attach_trailer(truck_id, attach_data.trailer_id)
    await db.refresh(truck)

    await log_user_action(
        db, current_user, AuditAction.TRAILER_ATTACHED, "truck", truck.id,
        {"trailer_id": attach_data.trailer_id}
    )
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.delete("/{truck_id}/trailer", response_model=Envelope[TruckResponse])
async def detach_trailer(
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        truck = await VehicleRegistry(db).detach_trailer(truck_id)
    await db.refresh(truck)

    await log_user_action(db, current_user, AuditAction.TRAILER_DETACHED, "truck", truck.id)
    return Envelope(data=TruckResponse.model_validate(truck))


@trucks_router.get("/{truck_id}/tires", response_model=Envelope[list[TireResponse]])
async def list_truck_tires(
    truck_id: int = Path(..., description="Truck ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    """Tires currently mounted on the truck."""
    ref = TruckRef(truck_id)
    await VehicleRegistry(db).get_by_id(ref)
    tires = await TireWearTracker(db).list_by_vehicle(ref)
    return Envelope(data=[TireResponse.model_validate(tire) for tire in tires])


# Trailers

@trailers_router.post("", response_model=Envelope[TrailerResponse], status_code=status.HTTP_201_CREATED)
async def create_trailer(
    trailer_data: TrailerCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        trailer = await VehicleRegistry(db).register_trailer(trailer_data.model_dump())
    await db.refresh(trailer)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_CREATED, "trailer", trailer.id,
        {"registration_number": trailer.registration_number}
    )
    return Envelope(data=TrailerResponse.model_validate(trailer))


@trailers_router.get("", response_model=PaginatedEnvelope[TrailerResponse])
async def list_trailers(
    status_filter: Optional[VehicleStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Registration number or brand"),
    sort: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    result = await VehicleRegistry(db).list_vehicles(Trailer, status_filter, search, sort, page, page_size)
    return paginated(result, TrailerResponse)


@trailers_router.get("/{trailer_id}", response_model=Envelope[TrailerResponse])
async def get_trailer(
    trailer_id: int = Path(..., description="Trailer ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    trailer = await VehicleRegistry(db).get_by_id(TrailerRef(trailer_id))
    return Envelope(data=TrailerResponse.model_validate(trailer))


@trailers_router.patch("/{trailer_id}", response_model=Envelope[TrailerResponse])
async def update_trailer(
    trailer_data: TrailerUpdate,
    trailer_id: int = Path(..., description="Trailer ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    changes = trailer_data.model_dump(exclude_unset=True)
    async with unit_of_work(db):
        trailer = await VehicleRegistry(db).update_details(TrailerRef(trailer_id), changes)
    await db.refresh(trailer)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_UPDATED, "trailer", trailer.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=TrailerResponse.model_validate(trailer))


@trailers_router.delete("/{trailer_id}", response_model=MessageResponse)
async def delete_trailer(
    trailer_id: int = Path(..., description="Trailer ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a trailer that is not attached and has no mounted tires."""
    async with unit_of_work(db):
        await VehicleRegistry(db).delete(TrailerRef(trailer_id))

    await log_user_action(db, current_user, AuditAction.VEHICLE_DELETED, "trailer", trailer_id)
    return MessageResponse(message=f"Trailer {trailer_id} deleted")


@trailers_router.patch("/{trailer_id}/status", response_model=Envelope[TrailerResponse])
async def change_trailer_status(
    status_data: StatusUpdate,
    trailer_id: int = Path(..., description="Trailer ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        trailer = await VehicleRegistry(db).change_status(TrailerRef(trailer_id), status_data.status)
    await db.refresh(trailer)

    await log_user_action(
        db, current_user, AuditAction.VEHICLE_STATUS_CHANGED, "trailer", trailer.id,
        {"status": trailer.status.value}
    )
    return Envelope(data=TrailerResponse.model_validate(trailer))


@trailers_router.get("/{trailer_id}/tires", response_model=Envelope[list[TireResponse]])
async def list_trailer_tires(
    trailer_id: int = Path(..., description="Trailer ID"),
    current_user: dict = Depends(any_fleet_user),
    db: AsyncSession = Depends(get_db)
):
    ref = TrailerRef(trailer_id)
    await VehicleRegistry(db).get_by_id(ref)
    tires = await TireWearTracker(db).list_by_vehicle(ref)
    return Envelope(data=[TireResponse.model_validate(tire) for tire in tires])
