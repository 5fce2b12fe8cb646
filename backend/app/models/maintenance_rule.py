"""
Maintenance Rule database model.

A rule says "service this vehicle every N km and/or every M months".
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.vehicle_enums import VehicleType
from backend.app.models.maintenance_enums import MaintenanceType
from backend.app.domain.fleet.vehicle_ref import VehicleRef, vehicle_ref


class MaintenanceRule(Base):
    """Maintenance interval rule for one vehicle and one maintenance type."""
    __tablename__ = "maintenance_rules"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_type = Column(Enum(VehicleType), nullable=False)
    vehicle_id = Column(Integer, nullable=False)
    maintenance_type = Column(Enum(MaintenanceType), nullable=False, index=True)

    # At least one interval is set
    interval_distance = Column(Integer, nullable=True)
    interval_months = Column(Integer, nullable=True)

    estimated_cost = Column(Float, nullable=True)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_maintenance_rules_vehicle', 'vehicle_type', 'vehicle_id'),
    )

    @property
    def vehicle(self) -> VehicleRef:
        return vehicle_ref(self.vehicle_type, self.vehicle_id)

    def __repr__(self):
        return f"<MaintenanceRule(id={self.id}, type={self.maintenance_type}, vehicle={self.vehicle_type}:{self.vehicle_id})>"
