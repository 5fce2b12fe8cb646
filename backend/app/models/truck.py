"""
Truck database model.

Trucks carry the odometer that routes advance, and may tow one trailer.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base, unique_key_index
from backend.app.models.vehicle_enums import VehicleStatus


class Truck(Base):
    """
    Truck model.

    The odometer only moves forward: it is advanced by route completion
    (through the vehicle registry) and never written directly by updates.
    """
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification (stored upper-cased)
    registration_number = Column(String(50), nullable=False, index=True)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    purchase_date = Column(Date, nullable=False)

    # Odometer in km
    current_odometer = Column(Integer, default=0, nullable=False)

    # Capacity
    fuel_capacity = Column(Float, nullable=False)

    # Status
    status = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False, index=True)

    # Optional attached trailer (one-to-one)
    trailer_id = Column(Integer, ForeignKey('trailers.id'), unique=True, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Truck(id={self.id}, registration='{self.registration_number}', status={self.status})>"


unique_key_index("uq_trucks_registration_number", Truck.registration_number, "Truck")
