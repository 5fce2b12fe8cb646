"""
Maintenance rule and record Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.maintenance_enums import MaintenanceType, MaintenanceStatus, MaintenancePriority
from backend.app.models.vehicle_enums import VehicleType


class MaintenanceRuleCreate(BaseModel):
    """At least one of interval_distance / interval_months is required."""
    vehicle_type: VehicleType
    vehicle_id: int
    maintenance_type: MaintenanceType
    interval_distance: Optional[int] = Field(None, gt=0, description="Service every N km")
    interval_months: Optional[int] = Field(None, gt=0, description="Service every N months")
    estimated_cost: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True


class MaintenanceRuleUpdate(BaseModel):
    maintenance_type: Optional[MaintenanceType] = None
    interval_distance: Optional[int] = Field(None, gt=0)
    interval_months: Optional[int] = Field(None, gt=0)
    estimated_cost: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class MaintenanceRuleResponse(BaseModel):
    id: int
    vehicle_type: VehicleType
    vehicle_id: int
    maintenance_type: MaintenanceType
    interval_distance: Optional[int]
    interval_months: Optional[int]
    estimated_cost: Optional[float]
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MaintenanceRecordCreate(BaseModel):
    vehicle_type: VehicleType
    vehicle_id: int
    maintenance_type: MaintenanceType
    odometer_at_maintenance: int = Field(..., ge=0)
    performed_at: Optional[datetime] = Field(None, description="Defaults to now")
    cost: Optional[float] = Field(None, ge=0)
    performed_by: str = Field(..., min_length=1, max_length=200)
    workshop: Optional[str] = Field(None, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    notes: Optional[str] = None
    status: Optional[MaintenanceStatus] = None
    priority: Optional[MaintenancePriority] = None
    next_maintenance_odometer: Optional[int] = Field(None, ge=0)
    next_maintenance_date: Optional[datetime] = None


class MaintenanceRecordUpdate(BaseModel):
    """Descriptive fields only; status moves through complete/cancel."""
    maintenance_type: Optional[MaintenanceType] = None
    odometer_at_maintenance: Optional[int] = Field(None, ge=0)
    performed_at: Optional[datetime] = None
    cost: Optional[float] = Field(None, ge=0)
    performed_by: Optional[str] = Field(None, min_length=1, max_length=200)
    workshop: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    notes: Optional[str] = None
    priority: Optional[MaintenancePriority] = None
    next_maintenance_odometer: Optional[int] = Field(None, ge=0)
    next_maintenance_date: Optional[datetime] = None


class MaintenanceRecordComplete(BaseModel):
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class MaintenanceRecordCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class MaintenanceRecordResponse(BaseModel):
    id: int
    vehicle_type: VehicleType
    vehicle_id: int
    maintenance_type: MaintenanceType
    performed_at: datetime
    odometer_at_maintenance: int
    cost: float
    performed_by: str
    workshop: Optional[str]
    description: str
    notes: Optional[str]
    next_maintenance_odometer: Optional[int]
    next_maintenance_date: Optional[datetime]
    is_overdue: bool
    status: MaintenanceStatus
    priority: MaintenancePriority
    created_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DueItemResponse(BaseModel):
    rule_id: int
    maintenance_type: MaintenanceType
    reason: str
    overdue_amount: float
    unit: str
    last_maintenance_odometer: Optional[int]
    last_maintenance_at: Optional[datetime]
    estimated_cost: Optional[float]


class VehicleDueResponse(BaseModel):
    vehicle_type: VehicleType
    vehicle_id: int
    registration_number: str
    current_odometer: int
    has_due_maintenance: bool
    items: List[DueItemResponse]

    @classmethod
    def from_report(cls, report) -> "VehicleDueResponse":
        return cls(
            vehicle_type=report.vehicle_type,
            vehicle_id=report.vehicle_id,
            registration_number=report.registration_number,
            current_odometer=report.current_odometer,
            has_due_maintenance=report.has_due_maintenance,
            items=[
                DueItemResponse(
                    rule_id=item.rule.id,
                    maintenance_type=item.rule.maintenance_type,
                    reason=item.result.reason,
                    overdue_amount=item.result.overdue_amount,
                    unit=item.result.unit,
                    last_maintenance_odometer=item.last_record.odometer_at_maintenance if item.last_record else None,
                    last_maintenance_at=item.last_record.performed_at if item.last_record else None,
                    estimated_cost=item.rule.estimated_cost,
                )
                for item in report.items
            ],
        )
