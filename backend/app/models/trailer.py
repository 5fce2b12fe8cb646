"""
Trailer database model.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base, unique_key_index
from backend.app.models.vehicle_enums import VehicleStatus


class Trailer(Base):
    """
    Trailer model.

    A trailer has no engine: its odometer follows the truck towing it,
    advanced by the same distance when a route completes.
    """
    __tablename__ = "trailers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    registration_number = Column(String(50), nullable=False, index=True)
    brand = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    purchase_date = Column(Date, nullable=False)

    current_odometer = Column(Integer, default=0, nullable=False)

    # Max load in kg
    max_load = Column(Float, nullable=False)

    status = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trailer(id={self.id}, registration='{self.registration_number}', status={self.status})>"


unique_key_index("uq_trailers_registration_number", Trailer.registration_number, "Trailer")
