"""
Centralized Test Configuration.

Every test gets a fresh in-memory SQLite database, a MockRedis in place of
the revocation store, and an httpx client bound to the app.
"""

import pytest
from datetime import date
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.security import create_access_token, get_password_hash
from backend.app.core.redis_client import get_redis
import backend.app.core.redis_client as redis_client_module
from backend.app.domain.fleet.tire_wear import TireWearTracker
from backend.app.domain.fleet.vehicle_ref import TruckRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry
from backend.app.models.driver import Driver
from backend.app.models.user_enums import UserRole
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus
from backend.app.models.user import User
from backend.app.models.vehicle_enums import VehicleStatus

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        return 1 if self.store.pop(key, None) is not None else 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
async def engine():
    """Fresh in-memory database with every table created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis(monkeypatch):
    redis = MockRedis()
    monkeypatch.setattr(redis_client_module, "redis_client", redis)
    return redis


@pytest.fixture
async def client(session_factory, mock_redis):
    """Async client for testing, wired to the per-test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


class FleetFactory:
    """Creates committed fleet fixtures through the same services the API uses."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def user(self, username: str, role: UserRole = UserRole.DRIVER, password: str = "secret123") -> User:
        user = User(
            email=f"{username}@fleet.test",
            username=username,
            hashed_password=get_password_hash(password),
            role=role,
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def driver(self, username: str = "driver1", license_number: str = None) -> Driver:
        user = await self.user(username)
        driver = Driver(user_id=user.id, license_number=license_number or f"LIC-{username.upper()}")
        self.db.add(driver)
        await self.db.commit()
        await self.db.refresh(driver)
        return driver

    async def truck(self, registration_number: str = "TRK-001", odometer: int = 100000,
                    status: VehicleStatus = VehicleStatus.AVAILABLE):
        truck = await VehicleRegistry(self.db).register_truck({
            "registration_number": registration_number,
            "model": "Volvo FH16",
            "year": 2020,
            "purchase_date": date(2020, 1, 15),
            "current_odometer": odometer,
            "fuel_capacity": 600.0,
            "status": status,
        })
        await self.db.commit()
        await self.db.refresh(truck)
        return truck

    async def trailer(self, registration_number: str = "TRL-001", odometer: int = 50000):
        trailer = await VehicleRegistry(self.db).register_trailer({
            "registration_number": registration_number,
            "brand": "Krone",
            "year": 2019,
            "purchase_date": date(2019, 6, 1),
            "current_odometer": odometer,
            "max_load": 24000.0,
        })
        await self.db.commit()
        await self.db.refresh(trailer)
        return trailer

    async def attach(self, truck, trailer):
        truck = await VehicleRegistry(self.db).attach_trailer(truck.id, trailer.id)
        await self.db.commit()
        await self.db.refresh(truck)
        return truck

    async def tire(self, owner, serial_number: str, installation_odometer: int = 0,
                   current_odometer: int = None):
        tire = await TireWearTracker(self.db).mount({
            "serial_number": serial_number,
            "brand": "Michelin",
            "size": "315/80R22.5",
            "purchase_date": date(2023, 1, 1),
            "owner": owner,
            "installation_odometer": installation_odometer,
            "current_odometer": current_odometer,
        })
        await self.db.commit()
        await self.db.refresh(tire)
        return tire

    async def route(self, route_number: str, driver: Driver, truck, planned_distance: float = 250.0) -> Route:
        route = Route(
            route_number=route_number.strip().upper(),
            driver_id=driver.id,
            truck_id=truck.id,
            description="Warehouse shuttle",
            departure_location="Lyon",
            arrival_location="Marseille",
            planned_distance=planned_distance,
            status=RouteStatus.PLANNED,
        )
        self.db.add(route)
        await self.db.commit()
        await self.db.refresh(route)
        return route


@pytest.fixture
def fleet(db_session):
    return FleetFactory(db_session)


def bearer(user: User) -> dict:
    token = create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(fleet):
    return await fleet.user("admin", UserRole.ADMIN)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
async def driver_profile(fleet):
    return await fleet.driver("driver1")


@pytest.fixture
async def driver_headers(db_session, driver_profile):
    user = await db_session.get(User, driver_profile.user_id)
    return bearer(user)


@pytest.fixture
async def other_driver_headers(fleet, db_session):
    """A second driver with no routes of their own."""
    driver = await fleet.driver("driver2")
    user = await db_session.get(User, driver.user_id)
    return bearer(user)


@pytest.fixture
async def truck_with_tires(fleet):
    """Truck at 100000 km with two tires mounted at 100000."""
    truck = await fleet.truck("TRK-001", odometer=100000)
    tires = [
        await fleet.tire(TruckRef(truck.id), "T-FRONT-L", installation_odometer=100000),
        await fleet.tire(TruckRef(truck.id), "T-FRONT-R", installation_odometer=100000),
    ]
    return truck, tires
