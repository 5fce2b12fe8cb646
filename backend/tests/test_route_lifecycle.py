"""
Route lifecycle tests.

Covers the state machine, distance propagation to truck, trailer and tires,
and that a failed completion leaves nothing behind.
"""

import pytest

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
from backend.app.domain.fleet.route_lifecycle import (
    RouteLifecycleService,
    plan_cancel,
    plan_completion,
    plan_start,
    plan_update,
)
from backend.app.domain.fleet.tire_wear import TireWearTracker
from backend.app.domain.fleet.vehicle_ref import TrailerRef, TruckRef
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus
from backend.app.models.tire import Tire
from backend.app.models.trailer import Trailer
from backend.app.models.truck import Truck
from backend.app.models.vehicle_enums import TireStatus, VehicleStatus


def planned_route(**overrides):
    values = dict(id=1, route_number="R-1", status=RouteStatus.PLANNED,
                  departure_odometer=None, arrival_odometer=None, vehicle_remarks=None)
    values.update(overrides)
    return Route(**values)


def available_truck(status=VehicleStatus.AVAILABLE):
    return Truck(id=1, registration_number="TRK-1", status=status, current_odometer=100000)


# Pure planning

def test_plan_start_requires_planned_route():
    route = planned_route(status=RouteStatus.IN_PROGRESS)
    with pytest.raises(InvalidStateError):
        plan_start(route, available_truck(), 100000)


def test_plan_start_rejects_negative_odometer():
    with pytest.raises(InvalidOdometerError):
        plan_start(planned_route(), available_truck(), -1)


def test_plan_start_requires_available_truck():
    with pytest.raises(VehicleUnavailableError):
        plan_start(planned_route(), available_truck(VehicleStatus.MAINTENANCE), 100000)


def test_plan_completion_checks_departure_and_arrival():
    with pytest.raises(InvalidStateError):
        plan_completion(planned_route(), 100240)

    with pytest.raises(MissingDepartureError):
        plan_completion(planned_route(status=RouteStatus.IN_PROGRESS), 100240)

    in_progress = planned_route(status=RouteStatus.IN_PROGRESS, departure_odometer=100000)
    with pytest.raises(InvalidOdometerError):
        plan_completion(in_progress, 100000)


def test_plan_completion_defaults():
    route = planned_route(status=RouteStatus.IN_PROGRESS, departure_odometer=100000)
    plan = plan_completion(route, 100240)
    assert plan.actual_distance == 240
    assert plan.fuel_volume == 0
    assert plan.fuel_cost == 0
    assert plan.vehicle_remarks == ""


def test_plan_completion_rejects_negative_fuel():
    route = planned_route(status=RouteStatus.IN_PROGRESS, departure_odometer=100000)
    with pytest.raises(DomainValidationError):
        plan_completion(route, 100240, fuel_volume=-5)


@pytest.mark.parametrize("status", [RouteStatus.COMPLETED, RouteStatus.CANCELLED])
def test_terminal_routes_cannot_be_cancelled(status):
    with pytest.raises(InvalidStateError):
        plan_cancel(planned_route(status=status))


def test_plan_cancel_appends_reason():
    plan = plan_cancel(planned_route(status=RouteStatus.IN_PROGRESS, vehicle_remarks="Loaded"), "engine fault")
    assert plan.release_truck
    assert plan.vehicle_remarks == "Loaded\nCancelled: engine fault"

    plan = plan_cancel(planned_route(), "client cancelled")
    assert not plan.release_truck
    assert plan.vehicle_remarks == "Cancelled: client cancelled"


def test_plan_update_rejects_lifecycle_fields():
    with pytest.raises(DomainValidationError):
        plan_update(planned_route(), {"arrival_odometer": 5})
    with pytest.raises(DomainValidationError):
        plan_update(planned_route(), {"status": RouteStatus.COMPLETED})


def test_plan_update_reassignment_only_while_planned():
    assert plan_update(planned_route(), {"truck_id": 2}) == {"truck_id": 2}
    with pytest.raises(InvalidStateError):
        plan_update(planned_route(status=RouteStatus.IN_PROGRESS), {"driver_id": 2})
    with pytest.raises(InvalidStateError):
        plan_update(planned_route(status=RouteStatus.COMPLETED), {"description": "late edit"})


def test_fuel_consumption_rate():
    route = planned_route(departure_odometer=100000, arrival_odometer=100240, fuel_volume=85.5)
    assert route.actual_distance == 240
    assert route.fuel_consumption_rate == pytest.approx(35.625)

    assert planned_route(departure_odometer=100000, arrival_odometer=100000,
                         fuel_volume=85.5).fuel_consumption_rate is None
    assert planned_route(departure_odometer=100000, arrival_odometer=100240,
                         fuel_volume=None).fuel_consumption_rate is None
    assert planned_route(departure_odometer=100000, fuel_volume=85.5).fuel_consumption_rate is None


# Service

async def _create(service, driver, truck, route_number="R-100"):
    return await service.create({
        "route_number": route_number,
        "driver_id": driver.id,
        "truck_id": truck.id,
        "description": "Lyon to Marseille",
        "departure_location": "Lyon",
        "arrival_location": "Marseille",
        "planned_distance": 315.0,
    })


@pytest.mark.asyncio
async def test_create_rejects_duplicate_route_number_in_any_casing(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck()
    service = RouteLifecycleService(db_session)

    route = await _create(service, driver, truck, " r-100 ")
    assert route.route_number == "R-100"
    assert route.status == RouteStatus.PLANNED

    with pytest.raises(DuplicateKeyError):
        await _create(service, driver, truck, "r-100")


@pytest.mark.asyncio
async def test_create_does_not_require_available_truck(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck(status=VehicleStatus.MAINTENANCE)
    route = await _create(RouteLifecycleService(db_session), driver, truck)
    assert route.status == RouteStatus.PLANNED


@pytest.mark.asyncio
async def test_create_requires_existing_driver_and_truck(fleet, db_session):
    driver_id = (await fleet.driver()).id
    truck_id = (await fleet.truck()).id
    service = RouteLifecycleService(db_session)

    with pytest.raises(ResourceNotFoundError):
        await service.create({"route_number": "R-X", "driver_id": 999, "truck_id": truck_id,
                              "description": "d", "departure_location": "a",
                              "arrival_location": "b", "planned_distance": 1})
    with pytest.raises(ResourceNotFoundError):
        await service.create({"route_number": "R-Y", "driver_id": driver_id, "truck_id": 999,
                              "description": "d", "departure_location": "a",
                              "arrival_location": "b", "planned_distance": 1})


@pytest.mark.asyncio
async def test_start_puts_truck_in_route(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route = await fleet.route("R-1", driver, truck)

    await RouteLifecycleService(db_session).start(route.id, 100000)

    async with session_factory() as check:
        stored = await check.get(Route, route.id)
        assert stored.status == RouteStatus.IN_PROGRESS
        assert stored.departure_odometer == 100000
        assert stored.started_at is not None
        assert (await check.get(Truck, truck.id)).status == VehicleStatus.IN_ROUTE


@pytest.mark.asyncio
async def test_second_route_cannot_start_on_busy_truck(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck()
    first = await fleet.route("R-1", driver, truck)
    second = await fleet.route("R-2", driver, truck)
    service = RouteLifecycleService(db_session)

    await service.start(first.id, 100000)
    with pytest.raises(VehicleUnavailableError):
        await service.start(second.id, 100000)


@pytest.mark.asyncio
async def test_complete_propagates_distance_everywhere(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck(odometer=100000)
    trailer = await fleet.trailer(odometer=60000)
    await fleet.attach(truck, trailer)
    truck_tires = [
        await fleet.tire(TruckRef(truck.id), "TT-0", installation_odometer=100000),
        await fleet.tire(TruckRef(truck.id), "TT-1", installation_odometer=100000),
    ]
    trailer_tire = await fleet.tire(TrailerRef(trailer.id), "TL-0", installation_odometer=30000,
                                    current_odometer=59000)
    route = await fleet.route("R-1", driver, truck)
    service = RouteLifecycleService(db_session)

    await service.start(route.id, 100000)
    result = await service.complete(route.id, 100240, fuel_volume=85.5, fuel_cost=150.0, remarks="Smooth trip")

    assert result.route.actual_distance == 240
    assert len(result.tires) == 3

    async with session_factory() as check:
        stored = await check.get(Route, route.id)
        assert stored.status == RouteStatus.COMPLETED
        assert stored.arrival_odometer == 100240
        assert stored.completed_at is not None
        assert stored.vehicle_remarks == "Smooth trip"
        assert stored.fuel_consumption_rate == pytest.approx(35.625)

        stored_truck = await check.get(Truck, truck.id)
        assert stored_truck.current_odometer == 100240
        assert stored_truck.status == VehicleStatus.AVAILABLE

        assert (await check.get(Trailer, trailer.id)).current_odometer == 60240

        for tire in truck_tires:
            stored_tire = await check.get(Tire, tire.id)
            assert stored_tire.current_odometer == 100240
            assert stored_tire.wear_percentage == pytest.approx(240 * 100 / 50000)

        stored_trailer_tire = await check.get(Tire, trailer_tire.id)
        assert stored_trailer_tire.current_odometer == 59240
        assert stored_trailer_tire.wear_percentage == pytest.approx(58.48)
        assert stored_trailer_tire.status == TireStatus.GOOD


@pytest.mark.asyncio
async def test_complete_can_push_tire_into_next_tier(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck(odometer=100000)
    tire = await fleet.tire(TruckRef(truck.id), "EDGE-1", installation_odometer=60000, current_odometer=89900)
    route = await fleet.route("R-1", driver, truck)
    service = RouteLifecycleService(db_session)

    await service.start(route.id, 100000)
    await service.complete(route.id, 100100)

    async with session_factory() as check:
        stored = await check.get(Tire, tire.id)
        assert stored.current_odometer == 90000
        assert stored.wear_percentage == pytest.approx(60.0)
        assert stored.status == TireStatus.WARNING


@pytest.mark.asyncio
async def test_failed_completion_leaves_everything_untouched(fleet, db_session, session_factory,
                                                           truck_with_tires, monkeypatch):
    driver = await fleet.driver()
    truck, tires = truck_with_tires
    route = await fleet.route("R-1", driver, truck)
    service = RouteLifecycleService(db_session)
    await service.start(route.id, 100000)
    # the rollback expires every loaded instance
    route_id, truck_id = route.id, truck.id
    tire_ids = [tire.id for tire in tires]

    calls = []

    async def failing_apply_wear(self, tire, new_odometer):
        calls.append(tire.id)
        raise RuntimeError("disk full")

    monkeypatch.setattr(TireWearTracker, "apply_wear", failing_apply_wear)

    with pytest.raises(RuntimeError):
        await service.complete(route_id, 100240, fuel_volume=85.5)
    assert calls

    async with session_factory() as check:
        stored = await check.get(Route, route_id)
        assert stored.status == RouteStatus.IN_PROGRESS
        assert stored.arrival_odometer is None

        stored_truck = await check.get(Truck, truck_id)
        assert stored_truck.current_odometer == 100000
        assert stored_truck.status == VehicleStatus.IN_ROUTE

        for tire_id in tire_ids:
            assert (await check.get(Tire, tire_id)).current_odometer == 100000


@pytest.mark.asyncio
async def test_completed_route_cannot_complete_or_cancel_again(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route_id = (await fleet.route("R-1", driver, truck)).id
    service = RouteLifecycleService(db_session)
    await service.start(route_id, 100000)
    await service.complete(route_id, 100050)

    with pytest.raises(InvalidStateError):
        await service.complete(route_id, 100100)
    with pytest.raises(InvalidStateError):
        await service.cancel(route_id, "too late")
    with pytest.raises(InvalidStateError):
        await service.start(route_id, 100100)


@pytest.mark.asyncio
async def test_cancel_in_progress_releases_truck(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route = await fleet.route("R-1", driver, truck)
    service = RouteLifecycleService(db_session)
    await service.start(route.id, 100000)

    await service.cancel(route.id, "breakdown")

    async with session_factory() as check:
        stored = await check.get(Route, route.id)
        assert stored.status == RouteStatus.CANCELLED
        assert stored.vehicle_remarks == "Cancelled: breakdown"
        assert (await check.get(Truck, truck.id)).status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_cancel_planned_leaves_truck_status_alone(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck(status=VehicleStatus.MAINTENANCE)
    route = await fleet.route("R-1", driver, truck)

    await RouteLifecycleService(db_session).cancel(route.id)

    async with session_factory() as check:
        assert (await check.get(Truck, truck.id)).status == VehicleStatus.MAINTENANCE


@pytest.mark.asyncio
async def test_stale_route_write_is_rejected(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route = await fleet.route("R-1", driver, truck)

    async with session_factory() as other:
        stale = await other.get(Route, route.id)

        await RouteLifecycleService(db_session).start(route.id, 100000)

        stale.vehicle_remarks = "edited from a second screen"
        with pytest.raises(InvalidStateError):
            async with unit_of_work(other):
                await other.flush()


@pytest.mark.asyncio
async def test_second_start_of_same_route_is_rejected(fleet, db_session, session_factory):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route_id = (await fleet.route("R-1", driver, truck)).id

    await RouteLifecycleService(db_session).start(route_id, 100000)

    async with session_factory() as other:
        with pytest.raises(InvalidStateError):
            await RouteLifecycleService(other).start(route_id, 100500)

    async with session_factory() as check:
        stored = await check.get(Route, route_id)
        assert stored.status == RouteStatus.IN_PROGRESS
        assert stored.departure_odometer == 100000


@pytest.mark.asyncio
async def test_transition_from_stale_read_is_rejected(fleet, db_session, session_factory, mocker):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route_id = (await fleet.route("R-1", driver, truck)).id

    async with session_factory() as other:
        stale = await other.get(Route, route_id)
        late_service = RouteLifecycleService(other)
        mocker.patch.object(late_service, "_get_for_update", return_value=stale)

        await RouteLifecycleService(db_session).start(route_id, 100000)

        with pytest.raises(InvalidStateError):
            await late_service.cancel(route_id, "second screen")

    async with session_factory() as check:
        assert (await check.get(Route, route_id)).status == RouteStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_create_racing_past_number_check_is_duplicate(fleet, db_session, mocker):
    driver = await fleet.driver()
    truck = await fleet.truck()
    service = RouteLifecycleService(db_session)
    await _create(service, driver, truck, "R-100")
    driver_id, truck_id = driver.id, truck.id

    # both creates saw no existing row
    mocker.patch.object(service, "_ensure_unique_route_number", return_value=None)

    with pytest.raises(DuplicateKeyError) as exc_info:
        await service.create({"route_number": "R-100", "driver_id": driver_id, "truck_id": truck_id,
                              "description": "d", "departure_location": "a",
                              "arrival_location": "b", "planned_distance": 1})
    assert exc_info.value.details["resource"] == "Route"
    assert exc_info.value.details["field"] == "route_number"


@pytest.mark.asyncio
async def test_route_numbers_are_unique_regardless_of_case(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck()
    route = await fleet.route("R-100", driver, truck)

    with pytest.raises(DuplicateKeyError):
        async with unit_of_work(db_session):
            db_session.add(Route(route_number="r-100", driver_id=route.driver_id, truck_id=route.truck_id,
                                 description="d", departure_location="a", arrival_location="b",
                                 planned_distance=1, status=RouteStatus.PLANNED))
            await db_session.flush()


@pytest.mark.asyncio
async def test_update_and_delete(fleet, db_session):
    driver = await fleet.driver()
    truck = await fleet.truck()
    other_truck = await fleet.truck("TRK-002")
    route = await fleet.route("R-1", driver, truck)
    service = RouteLifecycleService(db_session)

    route = await service.update(route.id, {"description": "Night run", "truck_id": other_truck.id})
    assert route.description == "Night run"
    assert route.truck_id == other_truck.id
    route_id = route.id

    await service.start(route_id, 100000)
    with pytest.raises(InvalidStateError):
        await service.delete(route_id)

    await service.cancel(route_id)
    await service.delete(route_id)
    with pytest.raises(ResourceNotFoundError):
        await service.get(route_id)


@pytest.mark.asyncio
async def test_list_routes_filters(fleet, db_session):
    first_driver = await fleet.driver("driver1")
    second_driver = await fleet.driver("driver2")
    truck = await fleet.truck()
    await fleet.route("R-1", first_driver, truck)
    await fleet.route("R-2", second_driver, truck)
    await fleet.route("R-3", first_driver, truck)

    page = await RouteLifecycleService(db_session).list_routes(driver_id=first_driver.id, sort="route_number")

    assert page.total == 2
    assert [route.route_number for route in page.items] == ["R-1", "R-3"]
