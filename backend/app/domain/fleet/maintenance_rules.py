"""
Maintenance Rule Engine (Domain Logic).

Decides whether a vehicle is due for a maintenance type by comparing its
odometer and the time elapsed against the rule's intervals, measured from
the last completed maintenance of that type (or the purchase date).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    DomainValidationError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.domain.fleet.pagination import Page, paginate, apply_sort
from backend.app.domain.fleet.vehicle_ref import TrailerRef, TruckRef, VehicleRef
from backend.app.domain.fleet.vehicle_registry import VehicleRegistry
from backend.app.models.maintenance_enums import MaintenanceStatus, MaintenanceType, OPEN_MAINTENANCE_STATUSES
from backend.app.models.maintenance_record import MaintenanceRecord
from backend.app.models.maintenance_rule import MaintenanceRule
from backend.app.models.trailer import Trailer
from backend.app.models.truck import Truck
from backend.app.models.vehicle_enums import VehicleType

logger = logging.getLogger(__name__)

REASON_DISTANCE = "distance interval reached"
REASON_TIME = "time interval reached"

RULE_SORT_FIELDS = ("created_at", "maintenance_type", "interval_distance", "interval_months")
RECORD_SORT_FIELDS = ("performed_at", "created_at", "odometer_at_maintenance", "cost", "status")
# Descriptive fields of a record; status only moves through complete/cancel.
RECORD_UPDATABLE_FIELDS = (
    "maintenance_type", "performed_at", "odometer_at_maintenance", "cost", "performed_by",
    "workshop", "description", "notes", "priority", "next_maintenance_odometer", "next_maintenance_date",
)


@dataclass(frozen=True)
class DueResult:
    """
    Outcome of evaluating one rule.

    overdue_amount is in km when unit == "km", in months when unit == "months".
    """
    due: bool
    reason: Optional[str] = None
    overdue_amount: Optional[float] = None
    unit: Optional[str] = None


NOT_DUE = DueResult(due=False)


def _as_utc(moment) -> datetime:
    # Dates count from midnight; naive datetimes (SQLite) are treated as UTC
    if not isinstance(moment, datetime):
        moment = datetime(moment.year, moment.month, moment.day)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def elapsed_months(since, as_of=None, month_days: int = settings.maintenance_month_days) -> int:
    """Whole months between two moments, with every month month_days long."""
    as_of = _as_utc(as_of or datetime.now(timezone.utc))
    seconds = (as_of - _as_utc(since)).total_seconds()
    return int(seconds // (month_days * 86400))


def evaluate_due(
    rule,
    current_odometer: int,
    last_maintenance_odometer: int,
    last_maintenance_or_purchase_date,
    as_of: Optional[datetime] = None,
) -> DueResult:
    """
    Evaluate a maintenance rule against a vehicle's state.

    The distance check wins when both the distance and the time interval
    have been reached.

    Args:
        rule: Anything with interval_distance and interval_months (either may be None)
        current_odometer: Vehicle odometer now
        last_maintenance_odometer: Odometer at the last maintenance of this type (0 if never)
        last_maintenance_or_purchase_date: Date of that maintenance, or the purchase date
        as_of: Evaluation moment (defaults to now)

    Returns:
        DueResult
    """
    if rule.interval_distance:
        since_last = current_odometer - last_maintenance_odometer
        if since_last >= rule.interval_distance:
            return DueResult(
                due=True,
                reason=REASON_DISTANCE,
                overdue_amount=since_last - rule.interval_distance,
                unit="km",
            )

    if rule.interval_months and last_maintenance_or_purchase_date is not None:
        months = elapsed_months(last_maintenance_or_purchase_date, as_of)
        if months >= rule.interval_months:
            return DueResult(
                due=True,
                reason=REASON_TIME,
                overdue_amount=months - rule.interval_months,
                unit="months",
            )

    return NOT_DUE


@dataclass
class DueItem:
    rule: MaintenanceRule
    last_record: Optional[MaintenanceRecord]
    result: DueResult


@dataclass
class VehicleDueReport:
    """Due maintenance for one vehicle."""
    vehicle_type: VehicleType
    vehicle_id: int
    registration_number: str
    current_odometer: int
    items: List[DueItem] = field(default_factory=list)

    @property
    def has_due_maintenance(self) -> bool:
        return bool(self.items)


def validate_intervals(interval_distance: Optional[int], interval_months: Optional[int]) -> None:
    if not interval_distance and not interval_months:
        raise DomainValidationError("A maintenance rule needs a distance or a time interval")


class MaintenanceService:
    """
    Maintenance rules, maintenance history and due checks.

    Methods flush but never commit; callers own the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.registry = VehicleRegistry(db)

    # Rules

    async def create_rule(self, data: dict) -> MaintenanceRule:
        ref: VehicleRef = data["vehicle"]
        await self.registry.get_by_id(ref)
        validate_intervals(data.get("interval_distance"), data.get("interval_months"))
        rule = MaintenanceRule(
            vehicle_type=ref.vehicle_type,
            vehicle_id=ref.id,
            maintenance_type=data["maintenance_type"],
            interval_distance=data.get("interval_distance"),
            interval_months=data.get("interval_months"),
            estimated_cost=data.get("estimated_cost"),
            description=data.get("description"),
            is_active=data.get("is_active", True),
        )
        self.db.add(rule)
        await self.db.flush()
        return rule

    async def get_rule(self, rule_id: int) -> MaintenanceRule:
        rule = await self.db.get(MaintenanceRule, rule_id)
        if not rule:
            raise ResourceNotFoundError("Maintenance rule", rule_id)
        return rule

    async def update_rule(self, rule_id: int, changes: dict) -> MaintenanceRule:
        rule = await self.get_rule(rule_id)
        for name in ("maintenance_type", "interval_distance", "interval_months",
                     "estimated_cost", "description", "is_active"):
            if name in changes:
                setattr(rule, name, changes[name])
        validate_intervals(rule.interval_distance, rule.interval_months)
        await self.db.flush()
        return rule

    async def set_rule_active(self, rule_id: int, is_active: bool) -> MaintenanceRule:
        rule = await self.get_rule(rule_id)
        rule.is_active = is_active
        await self.db.flush()
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        rule = await self.get_rule(rule_id)
        await self.db.delete(rule)
        await self.db.flush()

    async def list_rules(
        self,
        vehicle_type: Optional[VehicleType] = None,
        vehicle_id: Optional[int] = None,
        maintenance_type: Optional[MaintenanceType] = None,
        is_active: Optional[bool] = None,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> Page:
        query = select(MaintenanceRule)
        if vehicle_type:
            query = query.where(MaintenanceRule.vehicle_type == vehicle_type)
        if vehicle_id is not None:
            query = query.where(MaintenanceRule.vehicle_id == vehicle_id)
        if maintenance_type:
            query = query.where(MaintenanceRule.maintenance_type == maintenance_type)
        if is_active is not None:
            query = query.where(MaintenanceRule.is_active == is_active)
        query = apply_sort(query, MaintenanceRule, sort, RULE_SORT_FIELDS)
        return await paginate(self.db, query, page, page_size)

    async def active_rules_for(self, ref: VehicleRef) -> List[MaintenanceRule]:
        result = await self.db.execute(
            select(MaintenanceRule).where(
                MaintenanceRule.vehicle_type == ref.vehicle_type,
                MaintenanceRule.vehicle_id == ref.id,
                MaintenanceRule.is_active.is_(True),
            ).order_by(MaintenanceRule.id)
        )
        return list(result.scalars().all())

    # Records

    async def create_record(self, data: dict, created_by: Optional[int] = None) -> MaintenanceRecord:
        ref: VehicleRef = data["vehicle"]
        await self.registry.get_by_id(ref)
        record = MaintenanceRecord(
            vehicle_type=ref.vehicle_type,
            vehicle_id=ref.id,
            maintenance_type=data["maintenance_type"],
            odometer_at_maintenance=data["odometer_at_maintenance"],
            cost=data.get("cost") or 0.0,
            performed_by=data["performed_by"],
            workshop=data.get("workshop"),
            description=data["description"],
            notes=data.get("notes"),
            status=data.get("status") or MaintenanceStatus.SCHEDULED,
            performed_at=data.get("performed_at") or datetime.now(timezone.utc),
            next_maintenance_odometer=data.get("next_maintenance_odometer"),
            next_maintenance_date=data.get("next_maintenance_date"),
            created_by=created_by,
        )
        if data.get("priority"):
            record.priority = data["priority"]
        self.db.add(record)
        await self.db.flush()
        return record

    async def get_record(self, record_id: int) -> MaintenanceRecord:
        record = await self.db.get(MaintenanceRecord, record_id)
        if not record:
            raise ResourceNotFoundError("Maintenance record", record_id)
        return record

    async def update_record(self, record_id: int, changes: dict) -> MaintenanceRecord:
        record = await self.get_record(record_id)
        for name in RECORD_UPDATABLE_FIELDS:
            if name in changes:
                setattr(record, name, changes[name])
        await self.db.flush()
        return record

    async def delete_record(self, record_id: int) -> None:
        record = await self.get_record(record_id)
        await self.db.delete(record)
        await self.db.flush()

    async def complete_record(self, record_id: int, cost: Optional[float] = None,
                              notes: Optional[str] = None) -> MaintenanceRecord:
        record = await self.get_record(record_id)
        if record.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
            raise InvalidStateError(f"Maintenance record {record_id} is already closed", record.status)
        record.status = MaintenanceStatus.COMPLETED
        if cost is not None:
            record.cost = cost
        if notes:
            record.notes = notes
        await self.db.flush()
        return record

    async def cancel_record(self, record_id: int, reason: Optional[str] = None) -> MaintenanceRecord:
        record = await self.get_record(record_id)
        if record.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
            raise InvalidStateError(f"Maintenance record {record_id} is already closed", record.status)
        record.status = MaintenanceStatus.CANCELLED
        record.notes = f"Cancelled: {reason}" if reason else "Cancelled"
        await self.db.flush()
        return record

    async def list_records(
        self,
        vehicle_type: Optional[VehicleType] = None,
        vehicle_id: Optional[int] = None,
        maintenance_type: Optional[MaintenanceType] = None,
        status: Optional[MaintenanceStatus] = None,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: int = settings.default_page_size,
    ) -> Page:
        query = select(MaintenanceRecord)
        if vehicle_type:
            query = query.where(MaintenanceRecord.vehicle_type == vehicle_type)
        if vehicle_id is not None:
            query = query.where(MaintenanceRecord.vehicle_id == vehicle_id)
        if maintenance_type:
            query = query.where(MaintenanceRecord.maintenance_type == maintenance_type)
        if status:
            query = query.where(MaintenanceRecord.status == status)
        query = apply_sort(query, MaintenanceRecord, sort, RECORD_SORT_FIELDS, default="-performed_at")
        return await paginate(self.db, query, page, page_size)

    async def upcoming_records(self, days: int = settings.maintenance_upcoming_days,
                               as_of: Optional[datetime] = None) -> List[MaintenanceRecord]:
        """
        Open records whose next maintenance falls within the next ``days`` days,
        soonest first.
        """
        if days < 0:
            raise DomainValidationError("days must be zero or positive", {"days": days})
        start = _as_utc(as_of or datetime.now(timezone.utc))
        result = await self.db.execute(
            select(MaintenanceRecord).where(
                MaintenanceRecord.status.in_(OPEN_MAINTENANCE_STATUSES),
                MaintenanceRecord.next_maintenance_date >= start,
                MaintenanceRecord.next_maintenance_date <= start + timedelta(days=days),
            ).order_by(MaintenanceRecord.next_maintenance_date, MaintenanceRecord.id)
        )
        return list(result.scalars().all())

    async def overdue_records(self, as_of: Optional[datetime] = None) -> List[MaintenanceRecord]:
        """Open records whose next maintenance date has already passed."""
        now = _as_utc(as_of or datetime.now(timezone.utc))
        result = await self.db.execute(
            select(MaintenanceRecord).where(
                MaintenanceRecord.status.in_(OPEN_MAINTENANCE_STATUSES),
                MaintenanceRecord.next_maintenance_date < now,
            ).order_by(MaintenanceRecord.next_maintenance_date, MaintenanceRecord.id)
        )
        return list(result.scalars().all())

    async def vehicle_history(self, ref: VehicleRef, page: int = 1,
                              page_size: int = settings.default_page_size) -> Page:
        await self.registry.get_by_id(ref)
        return await self.list_records(
            vehicle_type=ref.vehicle_type, vehicle_id=ref.id, page=page, page_size=page_size
        )

    async def last_completed_by_type(self, ref: VehicleRef) -> Dict[MaintenanceType, MaintenanceRecord]:
        """Most recent COMPLETED record per maintenance type for a vehicle."""
        result = await self.db.execute(
            select(MaintenanceRecord).where(
                MaintenanceRecord.vehicle_type == ref.vehicle_type,
                MaintenanceRecord.vehicle_id == ref.id,
                MaintenanceRecord.status == MaintenanceStatus.COMPLETED,
            ).order_by(MaintenanceRecord.performed_at.desc(), MaintenanceRecord.id.desc())
        )
        latest: Dict[MaintenanceType, MaintenanceRecord] = {}
        for record in result.scalars().all():
            latest.setdefault(record.maintenance_type, record)
        return latest

    # Due checks

    async def check_vehicle(self, ref: VehicleRef, as_of: Optional[datetime] = None) -> VehicleDueReport:
        """Evaluate every active rule of a vehicle."""
        vehicle = await self.registry.get_by_id(ref)
        rules = await self.active_rules_for(ref)
        latest = await self.last_completed_by_type(ref)

        report = VehicleDueReport(
            vehicle_type=ref.vehicle_type,
            vehicle_id=ref.id,
            registration_number=vehicle.registration_number,
            current_odometer=vehicle.current_odometer,
        )
        for rule in rules:
            last = latest.get(rule.maintenance_type)
            result = evaluate_due(
                rule,
                vehicle.current_odometer,
                last.odometer_at_maintenance if last else 0,
                last.performed_at if last else vehicle.purchase_date,
                as_of=as_of,
            )
            if result.due:
                report.items.append(DueItem(rule=rule, last_record=last, result=result))
        return report

    async def check_fleet(self, as_of: Optional[datetime] = None) -> List[VehicleDueReport]:
        """Due maintenance across every truck and trailer; only vehicles with something due."""
        reports = []
        trucks = await self.db.execute(select(Truck.id).order_by(Truck.id))
        trailers = await self.db.execute(select(Trailer.id).order_by(Trailer.id))
        refs = [TruckRef(truck_id) for truck_id in trucks.scalars().all()]
        refs += [TrailerRef(trailer_id) for trailer_id in trailers.scalars().all()]

        for ref in refs:
            report = await self.check_vehicle(ref, as_of=as_of)
            if report.has_due_maintenance:
                reports.append(report)
        logger.info("Fleet maintenance check: %d of %d vehicles due", len(reports), len(refs))
        return reports
