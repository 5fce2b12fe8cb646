"""
Maintenance API Endpoints.

Maintenance rules, the maintenance record history and due-maintenance
checks (Admin only).
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db, unit_of_work
from backend.app.core.config import settings
from backend.app.core.guards import require_admin
from backend.app.domain.fleet.maintenance_rules import MaintenanceService
from backend.app.domain.fleet.vehicle_ref import vehicle_ref
from backend.app.models.maintenance_enums import MaintenanceType, MaintenanceStatus
from backend.app.models.vehicle_enums import VehicleType
from backend.app.schemas.common import Envelope, PaginatedEnvelope, MessageResponse, paginated
from backend.app.schemas.maintenance import (
    MaintenanceRuleCreate, MaintenanceRuleUpdate, MaintenanceRuleResponse,
    MaintenanceRecordCreate, MaintenanceRecordUpdate, MaintenanceRecordComplete, MaintenanceRecordCancel,
    MaintenanceRecordResponse,
    VehicleDueResponse,
)
from backend.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/maintenance", tags=["Fleet - Maintenance"])


# Rules

@router.post("/rules", response_model=Envelope[MaintenanceRuleResponse], status_code=status.HTTP_201_CREATED)
async def create_rule(
    rule_data: MaintenanceRuleCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a maintenance interval rule; at least one interval is required."""
    data = rule_data.model_dump(exclude={"vehicle_type", "vehicle_id"})
    data["vehicle"] = vehicle_ref(rule_data.vehicle_type, rule_data.vehicle_id)

    async with unit_of_work(db):
        rule = await MaintenanceService(db).create_rule(data)
    await db.refresh(rule)

    await log_user_action(
        db, current_user, AuditAction.MAINTENANCE_RULE_CREATED, "maintenance_rule", rule.id,
        {"maintenance_type": rule.maintenance_type.value,
         "vehicle": f"{rule.vehicle_type.value}:{rule.vehicle_id}"}
    )
    return Envelope(data=MaintenanceRuleResponse.model_validate(rule))


@router.get("/rules", response_model=PaginatedEnvelope[MaintenanceRuleResponse])
async def list_rules(
    vehicle_type: Optional[VehicleType] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    maintenance_type: Optional[MaintenanceType] = Query(None),
    is_active: Optional[bool] = Query(None),
    sort: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await MaintenanceService(db).list_rules(
        vehicle_type, vehicle_id, maintenance_type, is_active, sort, page, page_size
    )
    return paginated(result, MaintenanceRuleResponse)


@router.get("/rules/{rule_id}", response_model=Envelope[MaintenanceRuleResponse])
async def get_rule(
    rule_id: int = Path(..., description="Rule ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    rule = await MaintenanceService(db).get_rule(rule_id)
    return Envelope(data=MaintenanceRuleResponse.model_validate(rule))


@router.patch("/rules/{rule_id}", response_model=Envelope[MaintenanceRuleResponse])
async def update_rule(
    rule_data: MaintenanceRuleUpdate,
    rule_id: int = Path(..., description="Rule ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    changes = rule_data.model_dump(exclude_unset=True)
    async with unit_of_work(db):
        rule = await MaintenanceService(db).update_rule(rule_id, changes)
    await db.refresh(rule)

    await log_user_action(
        db, current_user, AuditAction.MAINTENANCE_RULE_UPDATED, "maintenance_rule", rule.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=MaintenanceRuleResponse.model_validate(rule))


@router.post("/rules/{rule_id}/activate", response_model=Envelope[MaintenanceRuleResponse])
async def activate_rule(
    rule_id: int = Path(..., description="Rule ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        rule = await MaintenanceService(db).set_rule_active(rule_id, True)
    await db.refresh(rule)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RULE_UPDATED, "maintenance_rule",
                          rule.id, {"is_active": True})
    return Envelope(data=MaintenanceRuleResponse.model_validate(rule))


@router.post("/rules/{rule_id}/deactivate", response_model=Envelope[MaintenanceRuleResponse])
async def deactivate_rule(
    rule_id: int = Path(..., description="Rule ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Inactive rules are skipped by due checks."""
    async with unit_of_work(db):
        rule = await MaintenanceService(db).set_rule_active(rule_id, False)
    await db.refresh(rule)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RULE_UPDATED, "maintenance_rule",
                          rule.id, {"is_active": False})
    return Envelope(data=MaintenanceRuleResponse.model_validate(rule))


@router.delete("/rules/{rule_id}", response_model=MessageResponse)
async def delete_rule(
    rule_id: int = Path(..., description="Rule ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        await MaintenanceService(db).delete_rule(rule_id)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RULE_DELETED, "maintenance_rule", rule_id)
    return MessageResponse(message=f"Maintenance rule {rule_id} deleted")


# Records

@router.post("/records", response_model=Envelope[MaintenanceRecordResponse], status_code=status.HTTP_201_CREATED)
async def create_record(
    record_data: MaintenanceRecordCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Log maintenance performed or scheduled on a vehicle."""
    data = record_data.model_dump(exclude={"vehicle_type", "vehicle_id"})
    data["vehicle"] = vehicle_ref(record_data.vehicle_type, record_data.vehicle_id)

    async with unit_of_work(db):
        record = await MaintenanceService(db).create_record(data, created_by=current_user["user_id"])
    await db.refresh(record)

    await log_user_action(
        db, current_user, AuditAction.MAINTENANCE_RECORD_CREATED, "maintenance_record", record.id,
        {"maintenance_type": record.maintenance_type.value, "status": record.status.value}
    )
    return Envelope(data=MaintenanceRecordResponse.model_validate(record))


@router.get("/records", response_model=PaginatedEnvelope[MaintenanceRecordResponse])
async def list_records(
    vehicle_type: Optional[VehicleType] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    maintenance_type: Optional[MaintenanceType] = Query(None),
    status_filter: Optional[MaintenanceStatus] = Query(None, alias="status"),
    sort: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await MaintenanceService(db).list_records(
        vehicle_type, vehicle_id, maintenance_type, status_filter, sort, page, page_size
    )
    return paginated(result, MaintenanceRecordResponse)


@router.get("/records/upcoming", response_model=Envelope[list[MaintenanceRecordResponse]])
async def upcoming_records(
    days: int = Query(settings.maintenance_upcoming_days, ge=0, le=365),
    as_of: Optional[datetime] = Query(None, description="Start of the window (defaults to now)"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Open records whose next maintenance falls within the next ``days`` days, soonest first."""
    records = await MaintenanceService(db).upcoming_records(days, as_of=as_of)
    return Envelope(data=[MaintenanceRecordResponse.model_validate(record) for record in records])


@router.get("/records/overdue", response_model=Envelope[list[MaintenanceRecordResponse]])
async def overdue_records(
    as_of: Optional[datetime] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    records = await MaintenanceService(db).overdue_records(as_of=as_of)
    return Envelope(data=[MaintenanceRecordResponse.model_validate(record) for record in records])


@router.get("/records/{record_id}", response_model=Envelope[MaintenanceRecordResponse])
async def get_record(
    record_id: int = Path(..., description="Record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    record = await MaintenanceService(db).get_record(record_id)
    return Envelope(data=MaintenanceRecordResponse.model_validate(record))


@router.patch("/records/{record_id}", response_model=Envelope[MaintenanceRecordResponse])
async def update_record(
    record_data: MaintenanceRecordUpdate,
    record_id: int = Path(..., description="Record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    changes = record_data.model_dump(exclude_unset=True)
    async with unit_of_work(db):
        record = await MaintenanceService(db).update_record(record_id, changes)
    await db.refresh(record)

    await log_user_action(
        db, current_user, AuditAction.MAINTENANCE_RECORD_UPDATED, "maintenance_record", record.id,
        {"updated_fields": list(changes.keys())}
    )
    return Envelope(data=MaintenanceRecordResponse.model_validate(record))


@router.delete("/records/{record_id}", response_model=MessageResponse)
async def delete_record(
    record_id: int = Path(..., description="Record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        await MaintenanceService(db).delete_record(record_id)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RECORD_DELETED, "maintenance_record", record_id)
    return MessageResponse(message=f"Maintenance record {record_id} deleted")


@router.post("/records/{record_id}/complete", response_model=Envelope[MaintenanceRecordResponse])
async def complete_record(
    complete_data: MaintenanceRecordComplete,
    record_id: int = Path(..., description="Record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Mark maintenance done. The record becomes the baseline for due checks."""
    async with unit_of_work(db):
        record = await MaintenanceService(db).complete_record(record_id, complete_data.cost, complete_data.notes)
    await db.refresh(record)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RECORD_COMPLETED,
                          "maintenance_record", record.id, {"cost": record.cost})
    return Envelope(data=MaintenanceRecordResponse.model_validate(record))


@router.post("/records/{record_id}/cancel", response_model=Envelope[MaintenanceRecordResponse])
async def cancel_record(
    cancel_data: MaintenanceRecordCancel,
    record_id: int = Path(..., description="Record ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    async with unit_of_work(db):
        record = await MaintenanceService(db).cancel_record(record_id, cancel_data.reason)
    await db.refresh(record)

    await log_user_action(db, current_user, AuditAction.MAINTENANCE_RECORD_CANCELLED,
                          "maintenance_record", record.id, {"reason": cancel_data.reason})
    return Envelope(data=MaintenanceRecordResponse.model_validate(record))


@router.get("/history/{vehicle_type}/{vehicle_id}", response_model=PaginatedEnvelope[MaintenanceRecordResponse])
async def vehicle_history(
    vehicle_type: VehicleType = Path(...),
    vehicle_id: int = Path(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Maintenance history of one vehicle, most recent first."""
    result = await MaintenanceService(db).vehicle_history(vehicle_ref(vehicle_type, vehicle_id), page, page_size)
    return paginated(result, MaintenanceRecordResponse)


# Due checks

@router.get("/due/{vehicle_type}/{vehicle_id}", response_model=Envelope[VehicleDueResponse])
async def check_vehicle_due(
    vehicle_type: VehicleType = Path(...),
    vehicle_id: int = Path(...),
    as_of: Optional[datetime] = Query(None, description="Evaluate as of this moment (defaults to now)"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Evaluate every active rule of a vehicle."""
    report = await MaintenanceService(db).check_vehicle(vehicle_ref(vehicle_type, vehicle_id), as_of=as_of)
    return Envelope(data=VehicleDueResponse.from_report(report))


@router.get("/due", response_model=Envelope[list[VehicleDueResponse]])
async def check_fleet_due(
    as_of: Optional[datetime] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Every truck and trailer with at least one rule due."""
    reports = await MaintenanceService(db).check_fleet(as_of=as_of)
    return Envelope(data=[VehicleDueResponse.from_report(report) for report in reports])
