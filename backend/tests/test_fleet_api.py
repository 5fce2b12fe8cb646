"""
Integration tests for the truck, trailer, tire, driver and maintenance endpoints.
"""

import pytest

TRUCK_PAYLOAD = {
    "registration_number": "ab-123-cd",
    "model": "Volvo FH16",
    "year": 2021,
    "purchase_date": "2021-03-01",
    "current_odometer": 12000,
    "fuel_capacity": 600,
}


async def _register_truck(client, admin_headers, **overrides):
    response = await client.post("/v1/trucks", headers=admin_headers, json={**TRUCK_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_truck_registration_and_lookup(client, admin_headers, driver_headers):
    truck = await _register_truck(client, admin_headers)
    assert truck["registration_number"] == "AB-123-CD"
    assert truck["status"] == "AVAILABLE"

    # Drivers can read the fleet
    response = await client.get(f"/v1/trucks/{truck['id']}", headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    # but not register vehicles
    response = await client.post("/v1/trucks", headers=driver_headers, json=TRUCK_PAYLOAD)
    assert response.status_code == 403

    response = await client.post("/v1/trucks", headers=admin_headers, json=TRUCK_PAYLOAD)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_DUPLICATE_001"


@pytest.mark.asyncio
async def test_missing_truck_is_404_envelope(client, admin_headers):
    response = await client.get("/v1/trucks/9999", headers=admin_headers)
    assert response.status_code == 404
    body = response.json()
    assert body == {
        "success": False,
        "error_code": "ERR_NOT_FOUND_001",
        "message": body["message"],
        "details": {"resource": "Truck", "id": 9999},
    }


@pytest.mark.asyncio
async def test_odometer_never_goes_backwards(client, admin_headers):
    truck = await _register_truck(client, admin_headers)

    response = await client.post(f"/v1/trucks/{truck['id']}/odometer", headers=admin_headers,
                                 json={"odometer": 12500})
    assert response.status_code == 200
    assert response.json()["data"]["current_odometer"] == 12500

    response = await client.post(f"/v1/trucks/{truck['id']}/odometer", headers=admin_headers,
                                 json={"odometer": 12499})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_ODOMETER_002"


@pytest.mark.asyncio
async def test_status_endpoint_refuses_in_route(client, admin_headers):
    truck = await _register_truck(client, admin_headers)

    response = await client.patch(f"/v1/trucks/{truck['id']}/status", headers=admin_headers,
                                  json={"status": "IN_ROUTE"})
    assert response.status_code == 400

    response = await client.patch(f"/v1/trucks/{truck['id']}/status", headers=admin_headers,
                                  json={"status": "MAINTENANCE"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "MAINTENANCE"


@pytest.mark.asyncio
async def test_truck_list_is_paginated(client, admin_headers):
    for index in range(3):
        await _register_truck(client, admin_headers, registration_number=f"TRK-{index}")

    response = await client.get("/v1/trucks", headers=admin_headers,
                                params={"sort": "registration_number", "page": 2, "page_size": 2})
    body = response.json()
    assert [truck["registration_number"] for truck in body["data"]] == ["TRK-2"]
    assert body["pagination"] == {"total": 3, "page": 2, "page_size": 2, "pages": 2}

    response = await client.get("/v1/trucks", headers=admin_headers, params={"sort": "-secret"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_tire_mount_and_wear(client, admin_headers):
    truck = await _register_truck(client, admin_headers)

    response = await client.post("/v1/tires", headers=admin_headers, json={
        "serial_number": "mic-001",
        "brand": "Michelin",
        "size": "315/80R22.5",
        "purchase_date": "2024-01-01",
        "owner_type": "TRUCK",
        "owner_id": truck["id"],
    })
    assert response.status_code == 201
    tire = response.json()["data"]
    assert tire["serial_number"] == "MIC-001"
    assert tire["installation_odometer"] == 12000
    assert tire["wear_percentage"] == 0

    response = await client.post(f"/v1/tires/{tire['id']}/wear", headers=admin_headers,
                                 json={"current_odometer": 54000})
    assert response.status_code == 200
    assert response.json()["data"]["wear_percentage"] == pytest.approx(84.0)
    assert response.json()["data"]["status"] == "NEED_REPLACEMENT"

    response = await client.get("/v1/tires/needing-replacement", headers=admin_headers)
    assert [item["id"] for item in response.json()["data"]] == [tire["id"]]

    response = await client.get(f"/v1/trucks/{truck['id']}/tires", headers=admin_headers)
    assert len(response.json()["data"]) == 1


@pytest.mark.asyncio
async def test_create_driver_with_new_account(client, admin_headers):
    response = await client.post("/v1/drivers", headers=admin_headers, json={
        "license_number": "fr-778899",
        "phone": "+33 6 12 34 56 78",
        "email": "paul@test.com",
        "username": "paul",
        "password": "password123",
    })
    assert response.status_code == 201
    driver = response.json()["data"]
    assert driver["license_number"] == "FR-778899"

    # The new account can log in and see its own profile
    login = await client.post("/v1/auth/login", json={"username": "paul", "password": "password123"})
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}
    response = await client.get("/v1/drivers/me", headers=headers)
    assert response.json()["data"]["id"] == driver["id"]


@pytest.mark.asyncio
async def test_maintenance_due_check(client, admin_headers):
    truck = await _register_truck(client, admin_headers, current_odometer=100000)

    response = await client.post("/v1/maintenance/rules", headers=admin_headers, json={
        "vehicle_type": "TRUCK",
        "vehicle_id": truck["id"],
        "maintenance_type": "OIL_CHANGE",
        "interval_distance": 10000,
        "estimated_cost": 250,
    })
    assert response.status_code == 201

    response = await client.post("/v1/maintenance/records", headers=admin_headers, json={
        "vehicle_type": "TRUCK",
        "vehicle_id": truck["id"],
        "maintenance_type": "OIL_CHANGE",
        "odometer_at_maintenance": 95000,
        "performed_at": "2024-05-01T08:00:00Z",
        "performed_by": "Garage Dupont",
        "description": "Oil and filter",
        "status": "COMPLETED",
    })
    assert response.status_code == 201

    params = {"as_of": "2024-06-01T00:00:00Z"}
    response = await client.get(f"/v1/maintenance/due/TRUCK/{truck['id']}", headers=admin_headers, params=params)
    assert response.status_code == 200
    report = response.json()["data"]
    assert report["has_due_maintenance"] is False
    assert report["items"] == []

    # 5000 km later the oil change is due again
    await client.post(f"/v1/trucks/{truck['id']}/odometer", headers=admin_headers, json={"odometer": 105000})
    response = await client.get("/v1/maintenance/due", headers=admin_headers, params=params)
    [report] = response.json()["data"]
    [item] = report["items"]
    assert item["reason"] == "distance interval reached"
    assert item["overdue_amount"] == 0
    assert item["last_maintenance_odometer"] == 95000


@pytest.mark.asyncio
async def test_maintenance_is_admin_only(client, driver_headers):
    response = await client.get("/v1/maintenance/due", headers=driver_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_maintenance_record_schedule_update_and_delete(client, admin_headers):
    truck = await _register_truck(client, admin_headers, current_odometer=100000)

    async def schedule(next_date):
        response = await client.post("/v1/maintenance/records", headers=admin_headers, json={
            "vehicle_type": "TRUCK",
            "vehicle_id": truck["id"],
            "maintenance_type": "BRAKE_CHECK",
            "odometer_at_maintenance": 100000,
            "performed_at": "2024-04-01T08:00:00Z",
            "performed_by": "Fleet workshop",
            "description": "Brake inspection",
            "next_maintenance_odometer": 120000,
            "next_maintenance_date": next_date,
        })
        assert response.status_code == 201
        return response.json()["data"]

    late = await schedule("2024-05-20T08:00:00Z")
    soon = await schedule("2024-06-05T08:00:00Z")
    assert late["is_overdue"] is True
    assert late["next_maintenance_odometer"] == 120000

    params = {"as_of": "2024-06-01T00:00:00Z"}
    response = await client.get("/v1/maintenance/records/upcoming", headers=admin_headers, params=params)
    assert response.status_code == 200
    assert [record["id"] for record in response.json()["data"]] == [soon["id"]]

    response = await client.get("/v1/maintenance/records/overdue", headers=admin_headers, params=params)
    assert [record["id"] for record in response.json()["data"]] == [late["id"]]

    response = await client.patch(f"/v1/maintenance/records/{late['id']}", headers=admin_headers, json={
        "next_maintenance_date": "2024-06-10T08:00:00Z",
        "workshop": "Garage Dupont",
    })
    assert response.status_code == 200
    assert response.json()["data"]["workshop"] == "Garage Dupont"

    response = await client.get("/v1/maintenance/records/upcoming", headers=admin_headers,
                                params={**params, "days": 14})
    assert [record["id"] for record in response.json()["data"]] == [soon["id"], late["id"]]

    response = await client.delete(f"/v1/maintenance/records/{soon['id']}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"/v1/maintenance/records/{soon['id']}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_upcoming_window_is_validated(client, admin_headers):
    response = await client.get("/v1/maintenance/records/upcoming", headers=admin_headers, params={"days": -1})
    assert response.status_code == 422
