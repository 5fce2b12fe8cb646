"""
Tire Wear Tracker (Domain Logic).

Wear is a pure function of the distance a tire has run since it was
mounted. The tracker owns the only write path for a tire's odometer,
wear percentage and status tier.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, or_
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
from backend.app.domain.fleet.vehicle_ref import VehicleRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry, canonical_key
from backend.app.models.tire import Tire
from backend.app.models.vehicle_enums import TireStatus, VehicleType

logger = logging.getLogger(__name__)

WEAR_LIFE_DISTANCE = settings.tire_wear_life_distance
WARNING_THRESHOLD = settings.tire_warning_threshold
REPLACEMENT_THRESHOLD = settings.tire_replacement_threshold

TIRE_SORT_FIELDS = ("created_at", "serial_number", "wear_percentage", "current_odometer", "status")


@dataclass(frozen=True)
class WearState:
    """Derived wear of a tire at a given odometer reading."""
    current_odometer: int
    wear_percentage: float
    status: TireStatus


def classify_wear(wear_percentage: float) -> TireStatus:
    """Thresholds are inclusive lower bounds: exactly 80 needs replacement, exactly 60 is a warning."""
    if wear_percentage >= REPLACEMENT_THRESHOLD:
        return TireStatus.NEED_REPLACEMENT
    if wear_percentage >= WARNING_THRESHOLD:
        return TireStatus.WARNING
    return TireStatus.GOOD


def compute_wear(installation_odometer: int, current_odometer: int,
                 life_distance: int = WEAR_LIFE_DISTANCE) -> WearState:
    """
    Compute wear for a tire mounted at installation_odometer now reading current_odometer.

    Args:
        installation_odometer: Tire odometer when mounted
        current_odometer: Tire odometer now (>= installation_odometer)
        life_distance: Tread life in km (100% wear)

    Returns:
        WearState with wear capped at 100%

    Raises:
        InvalidOdometerRegressionError: current is below the installation baseline
    """
    if current_odometer < installation_odometer:
        raise InvalidOdometerRegressionError("Tire", installation_odometer, current_odometer)

    usage = current_odometer - installation_odometer
    wear_percentage = min(usage * 100 / life_distance, 100.0)
    return WearState(
        current_odometer=current_odometer,
        wear_percentage=wear_percentage,
        status=classify_wear(wear_percentage),
    )


def next_wear_state(tire: Tire, new_odometer: int) -> WearState:
    """Wear after moving tire to new_odometer; readings never go backwards."""
    if new_odometer < tire.current_odometer:
        raise InvalidOdometerRegressionError("Tire", tire.current_odometer, new_odometer)
    return compute_wear(tire.installation_odometer, new_odometer)


class TireWearTracker:
    """
    Tire persistence and wear updates.

    Methods flush but never commit; callers own the transaction
    (see backend.app.db.session.unit_of_work).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, tire_id: int) -> Tire:
        tire = await self.db.get(Tire, tire_id)
        if not tire:
            raise ResourceNotFoundError("Tire", tire_id)
        return tire

    async def apply_wear(self, tire: Tire, new_odometer: int) -> Tire:
        """Move an already loaded tire to new_odometer and recompute its wear."""
        state = next_wear_state(tire, new_odometer)
        tire.current_odometer = state.current_odometer
        tire.wear_percentage = state.wear_percentage
        tire.status = state.status
        await self.db.flush()
        return tire

    async def advance_wear(self, tire_id: int, new_odometer: int) -> Tire:
        """
        Record a new odometer reading for a tire.

        Raises:
            ResourceNotFoundError: unknown tire
            InvalidStateError: tire is retired
            InvalidOdometerRegressionError: new_odometer below the current reading
        """
        tire = await self.get(tire_id)
        if not tire.is_mounted:
            raise InvalidStateError(f"Tire {tire_id} is retired")
        previous_status = tire.status
        await self.apply_wear(tire, new_odometer)
        if tire.status != previous_status:
            logger.info("Tire %s moved from %s to %s (wear %.1f%%)",
                        tire.serial_number, previous_status.value, tire.status.value, tire.wear_percentage)
        return tire

    async def list_by_vehicle(self, ref: VehicleRef) -> List[Tire]:
        """Mounted tires of a truck or trailer; empty list when none."""
        result = await self.db.execute(
            select(Tire).where(
                Tire.owner_type == ref.vehicle_type,
                Tire.owner_id == ref.id,
                Tire.retired_at.is_(None),
            ).order_by(Tire.id)
        )
        return list(result.scalars().all())

    async def advance_vehicle_tires(self, ref: VehicleRef, distance: int) -> List[Tire]:
        """Advance every tire mounted on ref by distance km."""
        tires = await self.list_by_vehicle(ref)
        for tire in tires:
            await self.apply_wear(tire, tire.current_odometer + distance)
        return tires

    async def mount(self, data: dict) -> Tire:
        """
        Register a new tire mounted on a truck or trailer.

        installation_odometer defaults to the owner's current odometer and
        current_odometer to the installation reading; wear is computed
        immediately.
        """
        serial_number = canonical_key(data["serial_number"])
        existing = await self.db.execute(select(Tire.id).where(Tire.serial_number == serial_number))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateKeyError("Tire", "serial_number", serial_number)

        owner: VehicleRef = data["owner"]
        vehicle = await VehicleRegistry(self.db).get_by_id(owner)

        installation_odometer = data.get("installation_odometer")
        if installation_odometer is None:
            installation_odometer = vehicle.current_odometer
        current_odometer = data.get("current_odometer")
        if current_odometer is None:
            current_odometer = installation_odometer
        if current_odometer < installation_odometer:
            raise DomainValidationError(
                "current_odometer cannot be below installation_odometer",
                {"installation_odometer": installation_odometer, "current_odometer": current_odometer}
            )
        state = compute_wear(installation_odometer, current_odometer)

        tire = Tire(
            serial_number=serial_number,
            brand=data["brand"],
            size=data["size"],
            purchase_date=data["purchase_date"],
            installation_date=data.get("installation_date"),
            installation_odometer=installation_odometer,
            current_odometer=state.current_odometer,
            wear_percentage=state.wear_percentage,
            status=state.status,
            owner_type=owner.vehicle_type,
            owner_id=owner.id,
        )
        self.db.add(tire)
        await self.db.flush()
        return tire

    async def update_details(self, tire_id: int, changes: dict) -> Tire:
        """Edit descriptive fields; odometer and wear only move through advance_wear."""
        tire = await self.get(tire_id)
        for field in ("brand", "size", "purchase_date", "installation_date"):
            if field in changes:
                setattr(tire, field, changes[field])
        await self.db.flush()
        return tire

    async def retire(self, tire_id: int) -> Tire:
        """Unmount a tire for good. The row is kept for history."""
        tire = await self.get(tire_id)
        if not tire.is_mounted:
            raise InvalidStateError(f"Tire {tire_id} is already retired")
        tire.retired_at = datetime.now(timezone.utc)
        await self.db.flush()
        return tire

    async def list_by_status(self, status: TireStatus) -> List[Tire]:
        """Mounted tires in one wear tier, most worn first."""
        result = await self.db.execute(
            select(Tire).where(
                Tire.status == status,
                Tire.retired_at.is_(None),
            ).order_by(Tire.wear_percentage.desc(), Tire.id)
        )
        return list(result.scalars().all())

    async def list_tires(
        self,
        status: Optional[TireStatus] = None,
        owner_type: Optional[VehicleType] = None,
        owner_id: Optional[int] = None,
        search: Optional[str] = None,
        include_retired: bool = False,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> Page:
        """Filtered, sorted, paginated tire listing. search matches serial number or brand."""
        query = select(Tire)
        if status:
            query = query.where(Tire.status == status)
        if owner_type:
            query = query.where(Tire.owner_type == owner_type)
        if owner_id is not None:
            query = query.where(Tire.owner_id == owner_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Tire.serial_number.ilike(pattern), Tire.brand.ilike(pattern)))
        if not include_retired:
            query = query.where(Tire.retired_at.is_(None))

        query = apply_sort(query, Tire, sort, TIRE_SORT_FIELDS)
        return await paginate(self.db, query, page, page_size)
