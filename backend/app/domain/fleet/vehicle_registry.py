"""
Vehicle Registry (Domain Logic).

Owns trucks and trailers: registration, operational status and the
odometer, which may only move forward.
"""

import logging
from typing import Optional, Union

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    DomainValidationError,
    DuplicateKeyError,
    InvalidOdometerRegressionError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.domain.fleet.pagination import Page, paginate, apply_sort
from backend.app.domain.fleet.vehicle_ref import TrailerRef, TruckRef, VehicleRef, describe
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus
from backend.app.models.tire import Tire
from backend.app.models.trailer import Trailer
from backend.app.models.truck import Truck
from backend.app.models.vehicle_enums import VehicleStatus

logger = logging.getLogger(__name__)

Vehicle = Union[Truck, Trailer]

VEHICLE_SORT_FIELDS = ("created_at", "registration_number", "current_odometer", "year", "status")

# Statuses an administrator may set by hand; IN_ROUTE belongs to the route lifecycle
MANUAL_STATUSES = (VehicleStatus.AVAILABLE, VehicleStatus.MAINTENANCE, VehicleStatus.OUT_OF_SERVICE)

# Fields an administrator may edit directly; odometer and status have their own operations
TRUCK_EDITABLE_FIELDS = ("model", "year", "purchase_date", "fuel_capacity")
TRAILER_EDITABLE_FIELDS = ("brand", "year", "purchase_date", "max_load")


def canonical_key(value: str) -> str:
    """Registration, serial and route numbers are unique case-insensitively."""
    return value.strip().upper()


def next_odometer(label: str, current: int, new_reading: int) -> int:
    """Validate an odometer move; readings are non-decreasing."""
    if new_reading < current:
        raise InvalidOdometerRegressionError(label, current, new_reading)
    return new_reading


def _model_for(ref: VehicleRef):
    if isinstance(ref, TruckRef):
        return Truck
    if isinstance(ref, TrailerRef):
        return Trailer
    raise TypeError(f"Not a vehicle reference: {ref!r}")


class VehicleRegistry:
    """
    Truck and trailer persistence.

    Methods flush but never commit; callers own the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, ref: VehicleRef, for_update: bool = False) -> Vehicle:
        """
        Load a truck or trailer.

        Raises:
            ResourceNotFoundError: no such vehicle
        """
        model = _model_for(ref)
        if for_update:
            result = await self.db.execute(
                select(model).where(model.id == ref.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            vehicle = result.scalar_one_or_none()
        else:
            vehicle = await self.db.get(model, ref.id)
        if not vehicle:
            raise ResourceNotFoundError(describe(ref), ref.id)
        return vehicle

    async def advance_odometer(self, ref: VehicleRef, new_reading: int) -> Vehicle:
        """
        Move a vehicle's odometer forward to new_reading.

        Raises:
            ResourceNotFoundError: no such vehicle
            InvalidOdometerRegressionError: new_reading below the current reading
        """
        vehicle = await self.get_by_id(ref)
        vehicle.current_odometer = next_odometer(describe(ref), vehicle.current_odometer, new_reading)
        await self.db.flush()
        return vehicle

    async def set_status(self, ref: VehicleRef, status: VehicleStatus) -> Vehicle:
        """Overwrite operational status. Transition rules live in the route lifecycle."""
        vehicle = await self.get_by_id(ref)
        vehicle.status = status
        await self.db.flush()
        return vehicle

    async def change_status(self, ref: VehicleRef, status: VehicleStatus) -> Vehicle:
        """
        Manual status change (workshop, decommissioning).

        Raises:
            DomainValidationError: status is IN_ROUTE
            InvalidStateError: vehicle is currently on a route
        """
        if status not in MANUAL_STATUSES:
            raise DomainValidationError(
                f"Status {status.value} is set by starting a route",
                {"allowed": [s.value for s in MANUAL_STATUSES]}
            )
        vehicle = await self.get_by_id(ref, for_update=True)
        if vehicle.status == VehicleStatus.IN_ROUTE:
            raise InvalidStateError(f"{describe(ref)} {ref.id} is on a route", vehicle.status)
        previous = vehicle.status
        await self.set_status(ref, status)
        logger.info("%s %s status %s -> %s", describe(ref), vehicle.registration_number,
                    previous.value, status.value)
        return vehicle

    async def get_attached_trailer(self, truck: Truck) -> Optional[Trailer]:
        if truck.trailer_id is None:
            return None
        return await self.get_by_id(TrailerRef(truck.trailer_id), for_update=True)

    async def attach_trailer(self, truck_id: int, trailer_id: int) -> Truck:
        """
        Hitch a trailer to a truck.

        A trailer is towed by at most one truck, and hitching is refused
        while the truck is on a route.
        """
        truck = await self.get_by_id(TruckRef(truck_id), for_update=True)
        await self.get_by_id(TrailerRef(trailer_id))
        if truck.status == VehicleStatus.IN_ROUTE:
            raise InvalidStateError(f"Truck {truck_id} is on a route", truck.status)

        holder = await self.db.execute(
            select(Truck.id).where(Truck.trailer_id == trailer_id, Truck.id != truck_id)
        )
        holder_id = holder.scalar_one_or_none()
        if holder_id is not None:
            raise InvalidStateError(f"Trailer {trailer_id} is already attached to truck {holder_id}")

        truck.trailer_id = trailer_id
        await self.db.flush()
        return truck

    async def detach_trailer(self, truck_id: int) -> Truck:
        truck = await self.get_by_id(TruckRef(truck_id), for_update=True)
        if truck.trailer_id is None:
            raise InvalidStateError(f"Truck {truck_id} has no trailer attached")
        if truck.status == VehicleStatus.IN_ROUTE:
            raise InvalidStateError(f"Truck {truck_id} is on a route", truck.status)
        truck.trailer_id = None
        await self.db.flush()
        return truck

    # Registration

    async def _ensure_unique_registration(self, model, registration_number: str):
        existing = await self.db.execute(
            select(model.id).where(model.registration_number == registration_number)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateKeyError(model.__name__, "registration_number", registration_number)

    async def register_truck(self, data: dict) -> Truck:
        registration_number = canonical_key(data["registration_number"])
        await self._ensure_unique_registration(Truck, registration_number)
        truck = Truck(
            registration_number=registration_number,
            model=data["model"],
            year=data["year"],
            purchase_date=data["purchase_date"],
            current_odometer=data.get("current_odometer") or 0,
            fuel_capacity=data["fuel_capacity"],
            status=data.get("status") or VehicleStatus.AVAILABLE,
        )
        self.db.add(truck)
        await self.db.flush()
        return truck

    async def register_trailer(self, data: dict) -> Trailer:
        registration_number = canonical_key(data["registration_number"])
        await self._ensure_unique_registration(Trailer, registration_number)
        trailer = Trailer(
            registration_number=registration_number,
            brand=data["brand"],
            year=data["year"],
            purchase_date=data["purchase_date"],
            current_odometer=data.get("current_odometer") or 0,
            max_load=data["max_load"],
            status=data.get("status") or VehicleStatus.AVAILABLE,
        )
        self.db.add(trailer)
        await self.db.flush()
        return trailer

    async def update_details(self, ref: VehicleRef, changes: dict) -> Vehicle:
        """Edit descriptive and capacity fields of a vehicle."""
        vehicle = await self.get_by_id(ref)
        editable = TRUCK_EDITABLE_FIELDS if isinstance(ref, TruckRef) else TRAILER_EDITABLE_FIELDS
        for field in editable:
            if field in changes:
                setattr(vehicle, field, changes[field])
        await self.db.flush()
        return vehicle

    async def delete(self, ref: VehicleRef) -> None:
        """
        Remove a vehicle.

        Refused while a truck is the subject of an IN_PROGRESS route, while
        a trailer is hitched to a truck, or while tires are still mounted.
        """
        vehicle = await self.get_by_id(ref, for_update=True)
        mounted = await self.db.execute(
            select(func.count(Tire.id)).where(
                Tire.owner_type == ref.vehicle_type,
                Tire.owner_id == ref.id,
                Tire.retired_at.is_(None),
            )
        )
        if mounted.scalar():
            raise InvalidStateError(f"{describe(ref)} {ref.id} still has mounted tires")
        if isinstance(ref, TruckRef):
            active = await self.db.execute(
                select(func.count(Route.id)).where(
                    Route.truck_id == ref.id,
                    Route.status == RouteStatus.IN_PROGRESS
                )
            )
            if active.scalar():
                raise InvalidStateError(f"Truck {ref.id} has a route in progress")
            referenced = await self.db.execute(select(func.count(Route.id)).where(Route.truck_id == ref.id))
            if referenced.scalar():
                raise InvalidStateError(f"Truck {ref.id} is referenced by existing routes")
        else:
            holder = await self.db.execute(select(Truck.id).where(Truck.trailer_id == ref.id))
            if holder.scalar_one_or_none() is not None:
                raise InvalidStateError(f"Trailer {ref.id} is attached to a truck")
        await self.db.delete(vehicle)
        await self.db.flush()

    async def list_vehicles(
        self,
        model,
        status: Optional[VehicleStatus] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> Page:
        """List trucks (model=Truck) or trailers (model=Trailer)."""
        query = select(model)
        if status:
            query = query.where(model.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            label_column = model.model if model is Truck else model.brand
            query = query.where(or_(model.registration_number.ilike(pattern), label_column.ilike(pattern)))
        query = apply_sort(query, model, sort, VEHICLE_SORT_FIELDS)
        return await paginate(self.db, query, page, page_size)
