"""
Integration tests for the route endpoints.

Covers the response envelope, error bodies, and driver ownership.
"""

import pytest

from backend.app.domain.fleet.vehicle_ref import TrailerRef


async def _plan(client, admin_headers, driver_id, truck_id, route_number="r-100"):
    response = await client.post("/v1/routes", headers=admin_headers, json={
        "route_number": route_number,
        "driver_id": driver_id,
        "truck_id": truck_id,
        "description": "Lyon to Marseille",
        "departure_location": "Lyon",
        "arrival_location": "Marseille",
        "planned_distance": 315,
    })
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_route_returns_envelope(client, admin_headers, driver_profile, fleet):
    truck = await fleet.truck()

    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    assert route["route_number"] == "R-100"
    assert route["status"] == "PLANNED"
    assert route["departure_odometer"] is None
    assert route["actual_distance"] is None


@pytest.mark.asyncio
async def test_duplicate_route_number_is_400(client, admin_headers, driver_profile, fleet):
    truck = await fleet.truck()
    await _plan(client, admin_headers, driver_profile.id, truck.id, "R-100")

    response = await client.post("/v1/routes", headers=admin_headers, json={
        "route_number": "r-100",
        "driver_id": driver_profile.id,
        "truck_id": truck.id,
        "description": "Again",
        "departure_location": "Lyon",
        "arrival_location": "Nice",
        "planned_distance": 470,
    })

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_DUPLICATE_001"


@pytest.mark.asyncio
async def test_driver_cannot_plan_routes(client, driver_headers, driver_profile, fleet):
    truck = await fleet.truck()
    response = await client.post("/v1/routes", headers=driver_headers, json={
        "route_number": "R-1",
        "driver_id": driver_profile.id,
        "truck_id": truck.id,
        "description": "Self assigned",
        "departure_location": "A",
        "arrival_location": "B",
        "planned_distance": 10,
    })
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_driver_runs_own_route_end_to_end(client, admin_headers, driver_headers, driver_profile,
                                                fleet, truck_with_tires):
    truck, tires = truck_with_tires
    trailer = await fleet.trailer(odometer=60000)
    await fleet.attach(truck, trailer)
    await fleet.tire(TrailerRef(trailer.id), "TL-1", installation_odometer=60000)
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    response = await client.post(f"/v1/routes/{route['id']}/start", headers=driver_headers,
                                 json={"departure_odometer": 100000})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "IN_PROGRESS"

    truck_response = await client.get(f"/v1/trucks/{truck.id}", headers=admin_headers)
    assert truck_response.json()["data"]["status"] == "IN_ROUTE"

    response = await client.post(f"/v1/routes/{route['id']}/complete", headers=driver_headers, json={
        "arrival_odometer": 100240,
        "fuel_volume": 85.5,
        "fuel_cost": 150.0,
        "remarks": "Smooth trip",
    })
    assert response.status_code == 200
    data = response.json()["data"]

    assert data["route"]["status"] == "COMPLETED"
    assert data["route"]["actual_distance"] == 240
    assert data["route"]["fuel_consumption_rate"] == pytest.approx(35.625)
    assert data["truck"]["current_odometer"] == 100240
    assert data["truck"]["status"] == "AVAILABLE"
    assert data["trailer"]["current_odometer"] == 60240
    assert sorted(tire["current_odometer"] for tire in data["tires"]) == [60240, 100240, 100240]
    for tire in data["tires"]:
        assert tire["wear_percentage"] == pytest.approx(0.48)
        assert tire["status"] == "GOOD"


@pytest.mark.asyncio
async def test_invalid_odometer_readings_are_400(client, admin_headers, driver_headers, driver_profile, fleet):
    truck = await fleet.truck()
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    response = await client.post(f"/v1/routes/{route['id']}/start", headers=driver_headers,
                                 json={"departure_odometer": -10})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_ODOMETER_001"

    await client.post(f"/v1/routes/{route['id']}/start", headers=driver_headers,
                      json={"departure_odometer": 100000})
    response = await client.post(f"/v1/routes/{route['id']}/complete", headers=driver_headers,
                                 json={"arrival_odometer": 99000})
    assert response.status_code == 400
    assert response.json()["details"]["departure_odometer"] == 100000


@pytest.mark.asyncio
async def test_starting_twice_is_invalid_state(client, admin_headers, driver_profile, fleet):
    truck = await fleet.truck()
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)
    url = f"/v1/routes/{route['id']}/start"

    assert (await client.post(url, headers=admin_headers, json={"departure_odometer": 100000})).status_code == 200
    response = await client.post(url, headers=admin_headers, json={"departure_odometer": 100000})

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_other_driver_cannot_touch_route(client, admin_headers, driver_profile, other_driver_headers, fleet):
    truck = await fleet.truck()
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    response = await client.get(f"/v1/routes/{route['id']}", headers=other_driver_headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"

    response = await client.post(f"/v1/routes/{route['id']}/start", headers=other_driver_headers,
                                 json={"departure_odometer": 100000})
    assert response.status_code == 403

    # Still planned
    response = await client.get(f"/v1/routes/{route['id']}", headers=admin_headers)
    assert response.json()["data"]["status"] == "PLANNED"


@pytest.mark.asyncio
async def test_driver_list_is_scoped_to_own_routes(client, admin_headers, driver_headers, driver_profile,
                                                   other_driver_headers, fleet):
    truck = await fleet.truck()
    await _plan(client, admin_headers, driver_profile.id, truck.id, "R-1")
    await _plan(client, admin_headers, driver_profile.id, truck.id, "R-2")

    response = await client.get("/v1/routes", headers=driver_headers, params={"sort": "route_number"})
    body = response.json()
    assert [route["route_number"] for route in body["data"]] == ["R-1", "R-2"]
    assert body["pagination"] == {"total": 2, "page": 1, "page_size": 10, "pages": 1}

    response = await client.get("/v1/routes", headers=other_driver_headers)
    assert response.json()["data"] == []

    response = await client.get("/v1/routes", headers=admin_headers, params={"page_size": 1})
    assert response.json()["pagination"]["pages"] == 2


@pytest.mark.asyncio
async def test_update_rejects_lifecycle_fields(client, admin_headers, driver_profile, fleet):
    truck = await fleet.truck()
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    response = await client.patch(f"/v1/routes/{route['id']}", headers=admin_headers,
                                  json={"arrival_odometer": 123})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.patch(f"/v1/routes/{route['id']}", headers=admin_headers,
                                  json={"description": "Via Avignon"})
    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Via Avignon"


@pytest.mark.asyncio
async def test_cancel_and_delete(client, admin_headers, driver_profile, fleet):
    truck = await fleet.truck()
    route = await _plan(client, admin_headers, driver_profile.id, truck.id)

    response = await client.post(f"/v1/routes/{route['id']}/cancel", headers=admin_headers,
                                 json={"reason": "client cancelled"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CANCELLED"
    assert response.json()["data"]["vehicle_remarks"] == "Cancelled: client cancelled"

    response = await client.delete(f"/v1/routes/{route['id']}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get(f"/v1/routes/{route['id']}", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"
