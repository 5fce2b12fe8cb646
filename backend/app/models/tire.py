"""
Tire database model.

A tire is mounted on either a truck or a trailer. The owner is stored as
(owner_type, owner_id) and exposed as a tagged VehicleRef.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base, unique_key_index
from backend.app.models.vehicle_enums import VehicleType, TireStatus
from backend.app.domain.fleet.vehicle_ref import VehicleRef, vehicle_ref


class Tire(Base):
    """
    Tire model.

    wear_percentage and status are derived from the distance driven since
    installation and are only written by the tire wear tracker.
    Retired tires keep their row (retired_at set) for history.
    """
    __tablename__ = "tires"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    serial_number = Column(String(100), nullable=False, index=True)
    brand = Column(String(100), nullable=False)
    size = Column(String(50), nullable=False)
    purchase_date = Column(Date, nullable=False)
    installation_date = Column(Date, nullable=True)

    # Odometer baseline at mount time, and the reading now
    installation_odometer = Column(Integer, default=0, nullable=False)
    current_odometer = Column(Integer, default=0, nullable=False)

    # Derived wear
    wear_percentage = Column(Float, default=0.0, nullable=False)
    status = Column(Enum(TireStatus), default=TireStatus.GOOD, nullable=False, index=True)

    # Owner (tagged: truck or trailer)
    owner_type = Column(Enum(VehicleType), nullable=False)
    owner_id = Column(Integer, nullable=False)

    retired_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_tires_owner', 'owner_type', 'owner_id'),
    )

    @property
    def owner(self) -> VehicleRef:
        return vehicle_ref(self.owner_type, self.owner_id)

    @property
    def usage_distance(self) -> int:
        return self.current_odometer - self.installation_odometer

    @property
    def is_mounted(self) -> bool:
        return self.retired_at is None

    def __repr__(self):
        return f"<Tire(id={self.id}, serial='{self.serial_number}', wear={self.wear_percentage}, status={self.status})>"


unique_key_index("uq_tires_serial_number", Tire.serial_number, "Tire")
