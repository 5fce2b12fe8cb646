"""
Failure Injection Tests.

Validates behaviour when the database or Redis misbehave.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backend.app.core.exceptions import DomainValidationError, DuplicateKeyError, StorageError
from backend.app.db.session import unit_of_work
from backend.app.domain.fleet.vehicle_ref import TruckRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry
from backend.app.models.truck import Truck


def _db_down():
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


@pytest.mark.asyncio
async def test_storage_failure_is_translated(db_session, mocker):
    mocker.patch.object(db_session, "commit", side_effect=_db_down())

    with pytest.raises(StorageError):
        async with unit_of_work(db_session):
            pass


@pytest.mark.asyncio
async def test_integrity_error_is_validation_error(db_session, mocker):
    mocker.patch.object(
        db_session, "commit",
        side_effect=IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed")),
    )

    with pytest.raises(DomainValidationError) as exc_info:
        async with unit_of_work(db_session):
            pass
    assert "FOREIGN KEY" in exc_info.value.details["reason"]


@pytest.mark.asyncio
async def test_unique_key_violation_is_duplicate_key(db_session, mocker):
    mocker.patch.object(
        db_session, "commit",
        side_effect=IntegrityError("INSERT", {}, Exception(
            'duplicate key value violates unique constraint "uq_trucks_registration_number"\n'
            "DETAIL:  Key (upper(registration_number::text))=(TRK-001) already exists."
        )),
    )

    with pytest.raises(DuplicateKeyError) as exc_info:
        async with unit_of_work(db_session):
            pass
    assert exc_info.value.details == {"resource": "Truck", "field": "registration_number", "value": "TRK-001"}


@pytest.mark.asyncio
async def test_failed_unit_of_work_writes_nothing(fleet, db_session, session_factory):
    truck_id = (await fleet.truck(odometer=1000)).id

    with pytest.raises(RuntimeError):
        async with unit_of_work(db_session):
            await VehicleRegistry(db_session).advance_odometer(TruckRef(truck_id), 2000)
            raise RuntimeError("crash mid-transaction")

    async with session_factory() as check:
        assert (await check.get(Truck, truck_id)).current_odometer == 1000


@pytest.mark.asyncio
async def test_storage_failure_returns_503(client, admin_headers, mocker):
    mocker.patch.object(VehicleRegistry, "register_truck", side_effect=_db_down())

    response = await client.post("/v1/trucks", headers=admin_headers, json={
        "registration_number": "TRK-503",
        "model": "MAN TGX",
        "year": 2022,
        "purchase_date": "2022-01-01",
        "fuel_capacity": 500,
    })

    assert response.status_code == 503
    assert response.json()["error_code"] == "ERR_STORAGE_001"


@pytest.mark.asyncio
async def test_redis_outage_does_not_lock_users_out(client, admin_headers, mock_redis, mocker):
    mocker.patch.object(mock_redis, "exists", side_effect=ConnectionError("redis down"))

    response = await client.get("/v1/auth/me", headers=admin_headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_reports_redis_down(client, mock_redis, mocker):
    mocker.patch.object(mock_redis, "ping", side_effect=ConnectionError("redis down"))

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "down"
    assert "X-Correlation-ID" in response.headers
