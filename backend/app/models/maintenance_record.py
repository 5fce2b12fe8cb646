"""
Maintenance Record database model.

History of maintenance performed (or scheduled) on a vehicle. The latest
COMPLETED record of a type is the baseline for due-maintenance checks.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.vehicle_enums import VehicleType
from backend.app.models.maintenance_enums import (
    MaintenanceType,
    MaintenanceStatus,
    MaintenancePriority,
    OPEN_MAINTENANCE_STATUSES,
)


class MaintenanceRecord(Base):
    """Maintenance record model."""
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_type = Column(Enum(VehicleType), nullable=False)
    vehicle_id = Column(Integer, nullable=False)
    maintenance_type = Column(Enum(MaintenanceType), nullable=False, index=True)

    performed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    odometer_at_maintenance = Column(Integer, nullable=False)

    cost = Column(Float, default=0.0, nullable=False)
    performed_by = Column(String(200), nullable=False)
    workshop = Column(String(200), nullable=True)
    description = Column(String(1000), nullable=False)
    notes = Column(Text, nullable=True)

    # When the next service of this kind is expected
    next_maintenance_odometer = Column(Integer, nullable=True)
    next_maintenance_date = Column(DateTime(timezone=True), nullable=True, index=True)

    status = Column(Enum(MaintenanceStatus), default=MaintenanceStatus.SCHEDULED, nullable=False, index=True)
    priority = Column(Enum(MaintenancePriority), default=MaintenancePriority.MEDIUM, nullable=False)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_maintenance_records_vehicle', 'vehicle_type', 'vehicle_id'),
    )

    @property
    def is_overdue(self) -> bool:
        """An open record whose next maintenance date has passed."""
        if self.status not in OPEN_MAINTENANCE_STATUSES or self.next_maintenance_date is None:
            return False
        next_date = self.next_maintenance_date
        if next_date.tzinfo is None:
            next_date = next_date.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > next_date

    def __repr__(self):
        return f"<MaintenanceRecord(id={self.id}, type={self.maintenance_type}, status={self.status})>"
