"""
Route Lifecycle (Domain Logic).

State machine:

    PLANNED --start--> IN_PROGRESS --complete--> COMPLETED
       |                    |
       +------cancel--------+-----------------> CANCELLED

The plan_* functions are pure: they check preconditions against the
current route (and truck) and describe the next state, without touching
the database. RouteLifecycleService applies a plan and every collaborator
write it implies inside a single unit of work, so on completion the route,
the truck, its trailer and all mounted tires move together or not at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    DomainValidationError,
    DuplicateKeyError,
    InvalidOdometerError,
    InvalidStateError,
    MissingDepartureError,
    ResourceNotFoundError,
    VehicleUnavailableError,
)
from backend.app.db.session import unit_of_work
from backend.app.domain.fleet.pagination import Page, paginate, apply_sort
from backend.app.domain.fleet.tire_wear import TireWearTracker
from backend.app.domain.fleet.vehicle_ref import TrailerRef, TruckRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry, canonical_key
from backend.app.models.driver import Driver
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus, TERMINAL_ROUTE_STATUSES
from backend.app.models.tire import Tire
from backend.app.models.trailer import Trailer
from backend.app.models.truck import Truck
from backend.app.models.vehicle_enums import VehicleStatus

logger = logging.getLogger(__name__)

# Fields the generic update path may touch. Odometer readings and status
# only change through start/complete/cancel.
UPDATABLE_FIELDS = frozenset({
    "description",
    "departure_location",
    "arrival_location",
    "planned_distance",
    "vehicle_remarks",
    "fuel_volume",
    "fuel_cost",
})
PLANNED_ONLY_FIELDS = frozenset({"driver_id", "truck_id"})

ROUTE_SORT_FIELDS = ("created_at", "route_number", "status", "planned_distance", "started_at", "completed_at")


@dataclass(frozen=True)
class StartPlan:
    departure_odometer: int
    started_at: datetime


@dataclass(frozen=True)
class CompletionPlan:
    arrival_odometer: int
    actual_distance: int
    fuel_volume: float
    fuel_cost: float
    vehicle_remarks: str
    completed_at: datetime


@dataclass(frozen=True)
class CancelPlan:
    release_truck: bool
    vehicle_remarks: Optional[str]


@dataclass
class CompletionResult:
    """What a completion touched, for the response and the audit trail."""
    route: Route
    truck: Truck
    trailer: Optional[Trailer]
    tires: List[Tire]


def _require_status(route: Route, expected: RouteStatus, action: str) -> None:
    if route.status != expected:
        raise InvalidStateError(
            f"Can only {action} a {expected.value} route, current status: {route.status.value}",
            route.status,
        )


def plan_start(route: Route, truck: Truck, departure_odometer: int) -> StartPlan:
    """
    Check a start request.

    Raises:
        InvalidStateError: route is not PLANNED
        InvalidOdometerError: negative departure reading
        VehicleUnavailableError: truck is not AVAILABLE
    """
    _require_status(route, RouteStatus.PLANNED, "start")
    if departure_odometer is None or departure_odometer < 0:
        raise InvalidOdometerError(
            "Departure odometer must be zero or positive",
            {"departure_odometer": departure_odometer}
        )
    if truck.status != VehicleStatus.AVAILABLE:
        raise VehicleUnavailableError("Truck", truck.id, truck.status)
    return StartPlan(departure_odometer=departure_odometer, started_at=datetime.now(timezone.utc))


def plan_completion(
    route: Route,
    arrival_odometer: int,
    fuel_volume: Optional[float] = None,
    fuel_cost: Optional[float] = None,
    remarks: Optional[str] = None,
) -> CompletionPlan:
    """
    Check a completion request and compute the distance driven.

    Raises:
        InvalidStateError: route is not IN_PROGRESS
        MissingDepartureError: no departure reading was recorded
        InvalidOdometerError: arrival reading not past departure
        DomainValidationError: negative fuel figures
    """
    _require_status(route, RouteStatus.IN_PROGRESS, "complete")
    if route.departure_odometer is None:
        raise MissingDepartureError(route.id)
    if arrival_odometer is None or arrival_odometer <= route.departure_odometer:
        raise InvalidOdometerError(
            "Arrival odometer must be greater than departure odometer",
            {"departure_odometer": route.departure_odometer, "arrival_odometer": arrival_odometer}
        )
    if (fuel_volume is not None and fuel_volume < 0) or (fuel_cost is not None and fuel_cost < 0):
        raise DomainValidationError(
            "Fuel volume and cost cannot be negative",
            {"fuel_volume": fuel_volume, "fuel_cost": fuel_cost}
        )
    return CompletionPlan(
        arrival_odometer=arrival_odometer,
        actual_distance=arrival_odometer - route.departure_odometer,
        fuel_volume=fuel_volume or 0.0,
        fuel_cost=fuel_cost or 0.0,
        vehicle_remarks=remarks or "",
        completed_at=datetime.now(timezone.utc),
    )


def plan_cancel(route: Route, reason: Optional[str] = None) -> CancelPlan:
    """
    Check a cancellation. Only PLANNED and IN_PROGRESS routes can be cancelled;
    the truck is released only if the route had actually put it on the road.
    """
    if route.status in TERMINAL_ROUTE_STATUSES:
        raise InvalidStateError(
            f"Cannot cancel a {route.status.value} route",
            route.status,
        )
    remarks = route.vehicle_remarks
    if reason:
        note = f"Cancelled: {reason.strip()}"
        remarks = f"{remarks}\n{note}" if remarks else note
    return CancelPlan(
        release_truck=route.status == RouteStatus.IN_PROGRESS,
        vehicle_remarks=remarks,
    )


def plan_update(route: Route, changes: dict) -> dict:
    """
    Filter a generic edit down to what may be written now.

    Raises:
        InvalidStateError: route is COMPLETED or CANCELLED, or a
            reassignment is attempted after the route started
        DomainValidationError: a lifecycle-owned field was supplied
    """
    if route.status in TERMINAL_ROUTE_STATUSES:
        raise InvalidStateError(f"Cannot edit a {route.status.value} route", route.status)

    forbidden = set(changes) - UPDATABLE_FIELDS - PLANNED_ONLY_FIELDS
    if forbidden:
        raise DomainValidationError(
            "These fields change only through start/complete/cancel",
            {"fields": sorted(forbidden)}
        )

    reassigned = set(changes) & PLANNED_ONLY_FIELDS
    if reassigned and route.status != RouteStatus.PLANNED:
        raise InvalidStateError(
            f"Driver and truck can only be reassigned on a PLANNED route, current status: {route.status.value}",
            route.status,
        )
    return dict(changes)


class RouteLifecycleService:
    """
    Route persistence and lifecycle transitions.

    Every mutating method runs as its own unit of work and commits on
    success; on any failure nothing is written.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.registry = VehicleRegistry(db)
        self.tires = TireWearTracker(db)

    async def get(self, route_id: int) -> Route:
        route = await self.db.get(Route, route_id)
        if not route:
            raise ResourceNotFoundError("Route", route_id)
        return route

    async def _get_for_update(self, route_id: int) -> Route:
        # Row lock on PostgreSQL; the version column covers backends without FOR UPDATE
        result = await self.db.execute(
            select(Route).where(Route.id == route_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        route = result.scalar_one_or_none()
        if not route:
            raise ResourceNotFoundError("Route", route_id)
        return route

    async def _require_driver(self, driver_id: int) -> Driver:
        driver = await self.db.get(Driver, driver_id)
        if not driver:
            raise ResourceNotFoundError("Driver", driver_id)
        return driver

    async def get_driver_user_id(self, route: Route) -> int:
        """User account of the route's driver, for the boundary's access check."""
        driver = await self._require_driver(route.driver_id)
        return driver.user_id

    async def _ensure_unique_route_number(self, route_number: str) -> None:
        existing = await self.db.execute(select(Route.id).where(Route.route_number == route_number))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateKeyError("Route", "route_number", route_number)

    async def create(self, data: dict) -> Route:
        """
        Plan a new route.

        Driver and truck must exist; truck availability is only checked at
        start, so routes can be planned ahead.
        """
        async with unit_of_work(self.db):
            route_number = canonical_key(data["route_number"])
            await self._ensure_unique_route_number(route_number)

            await self._require_driver(data["driver_id"])
            await self.registry.get_by_id(TruckRef(data["truck_id"]))

            route = Route(
                route_number=route_number,
                driver_id=data["driver_id"],
                truck_id=data["truck_id"],
                description=data["description"],
                departure_location=data["departure_location"],
                arrival_location=data["arrival_location"],
                planned_distance=data["planned_distance"],
                fuel_volume=data.get("fuel_volume"),
                fuel_cost=data.get("fuel_cost"),
                vehicle_remarks=data.get("vehicle_remarks"),
                status=RouteStatus.PLANNED,
            )
            self.db.add(route)
            await self.db.flush()

        logger.info("Route %s planned (truck=%s, driver=%s)", route.route_number, route.truck_id, route.driver_id)
        return route

    async def update(self, route_id: int, changes: dict) -> Route:
        """Edit non-lifecycle fields of a route that is not yet finished."""
        async with unit_of_work(self.db):
            route = await self._get_for_update(route_id)
            allowed = plan_update(route, changes)
            if "driver_id" in allowed:
                await self._require_driver(allowed["driver_id"])
            if "truck_id" in allowed:
                await self.registry.get_by_id(TruckRef(allowed["truck_id"]))
            for field, value in allowed.items():
                setattr(route, field, value)
            await self.db.flush()
        return route

    async def delete(self, route_id: int) -> None:
        """Delete a route that is not in progress."""
        async with unit_of_work(self.db):
            route = await self._get_for_update(route_id)
            if route.status == RouteStatus.IN_PROGRESS:
                raise InvalidStateError("Cannot delete a route in progress", route.status)
            await self.db.delete(route)
            await self.db.flush()
        logger.info("Route %s deleted", route_id)

    async def start(self, route_id: int, departure_odometer: int) -> Route:
        """
        PLANNED -> IN_PROGRESS. Records the departure reading and puts the truck IN_ROUTE.
        """
        try:
            async with unit_of_work(self.db):
                route = await self._get_for_update(route_id)
                truck = await self.registry.get_by_id(TruckRef(route.truck_id), for_update=True)
                plan = plan_start(route, truck, departure_odometer)

                route.departure_odometer = plan.departure_odometer
                route.started_at = plan.started_at
                route.status = RouteStatus.IN_PROGRESS
                await self.db.flush()
                await self.registry.set_status(TruckRef(truck.id), VehicleStatus.IN_ROUTE)
        except (InvalidStateError, InvalidOdometerError, VehicleUnavailableError) as exc:
            logger.warning("Start of route %s rejected: %s", route_id, exc.message)
            raise

        logger.info("Route %s started at %s km", route.route_number, route.departure_odometer)
        return route

    async def complete(
        self,
        route_id: int,
        arrival_odometer: int,
        fuel_volume: Optional[float] = None,
        fuel_cost: Optional[float] = None,
        remarks: Optional[str] = None,
    ) -> CompletionResult:
        """
        IN_PROGRESS -> COMPLETED, propagating the distance driven.

        In one transaction:
        1. route gets arrival reading, fuel figures, remarks, COMPLETED
        2. truck odometer += distance, truck AVAILABLE
        3. every tire mounted on the truck advances by distance
        4. the attached trailer (if any) and its tires advance by distance
        """
        try:
            async with unit_of_work(self.db):
                route = await self._get_for_update(route_id)
                plan = plan_completion(route, arrival_odometer, fuel_volume, fuel_cost, remarks)
                distance = plan.actual_distance

                route.arrival_odometer = plan.arrival_odometer
                route.fuel_volume = plan.fuel_volume
                route.fuel_cost = plan.fuel_cost
                route.vehicle_remarks = plan.vehicle_remarks
                route.completed_at = plan.completed_at
                route.status = RouteStatus.COMPLETED
                await self.db.flush()

                truck_ref = TruckRef(route.truck_id)
                truck = await self.registry.get_by_id(truck_ref, for_update=True)
                await self.registry.advance_odometer(truck_ref, truck.current_odometer + distance)
                await self.registry.set_status(truck_ref, VehicleStatus.AVAILABLE)
                tires = await self.tires.advance_vehicle_tires(truck_ref, distance)

                trailer = await self.registry.get_attached_trailer(truck)
                if trailer is not None:
                    trailer_ref = TrailerRef(trailer.id)
                    await self.registry.advance_odometer(trailer_ref, trailer.current_odometer + distance)
                    tires += await self.tires.advance_vehicle_tires(trailer_ref, distance)
        except (InvalidStateError, InvalidOdometerError, MissingDepartureError, DomainValidationError) as exc:
            logger.warning("Completion of route %s rejected: %s", route_id, exc.message)
            raise

        logger.info(
            "Route %s completed: %s km, truck %s now at %s km, %d tires advanced",
            route.route_number, distance, truck.registration_number, truck.current_odometer, len(tires)
        )
        return CompletionResult(route=route, truck=truck, trailer=trailer, tires=tires)

    async def cancel(self, route_id: int, reason: Optional[str] = None) -> Route:
        """PLANNED/IN_PROGRESS -> CANCELLED, releasing the truck if it had left."""
        try:
            async with unit_of_work(self.db):
                route = await self._get_for_update(route_id)
                plan = plan_cancel(route, reason)

                route.vehicle_remarks = plan.vehicle_remarks
                route.status = RouteStatus.CANCELLED
                await self.db.flush()
                if plan.release_truck:
                    await self.registry.set_status(TruckRef(route.truck_id), VehicleStatus.AVAILABLE)
        except InvalidStateError as exc:
            logger.warning("Cancellation of route %s rejected: %s", route_id, exc.message)
            raise

        logger.info("Route %s cancelled", route.route_number)
        return route

    async def list_routes(
        self,
        status: Optional[RouteStatus] = None,
        driver_id: Optional[int] = None,
        truck_id: Optional[int] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> Page:
        query = select(Route)
        if status:
            query = query.where(Route.status == status)
        if driver_id is not None:
            query = query.where(Route.driver_id == driver_id)
        if truck_id is not None:
            query = query.where(Route.truck_id == truck_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                Route.route_number.ilike(pattern)
                | Route.departure_location.ilike(pattern)
                | Route.arrival_location.ilike(pattern)
            )
        query = apply_sort(query, Route, sort, ROUTE_SORT_FIELDS)
        return await paginate(self.db, query, page, page_size)
