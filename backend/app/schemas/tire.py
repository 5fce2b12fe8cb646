"""
Tire Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional
from backend.app.models.vehicle_enums import TireStatus, VehicleType


class TireCreate(BaseModel):
    """
    Schema for mounting a new tire on a truck or trailer.

    installation_odometer defaults to the vehicle's current odometer.
    """
    serial_number: str = Field(..., min_length=1, max_length=100)
    brand: str = Field(..., min_length=1, max_length=100)
    size: str = Field(..., min_length=1, max_length=50, description="e.g. 315/80R22.5")
    purchase_date: date
    installation_date: Optional[date] = None
    owner_type: VehicleType
    owner_id: int
    installation_odometer: Optional[int] = Field(None, ge=0)
    current_odometer: Optional[int] = Field(None, ge=0)


class TireUpdate(BaseModel):
    brand: Optional[str] = Field(None, min_length=1, max_length=100)
    size: Optional[str] = Field(None, min_length=1, max_length=50)
    purchase_date: Optional[date] = None
    installation_date: Optional[date] = None


class TireWearUpdate(BaseModel):
    current_odometer: int = Field(..., ge=0, description="New tire odometer reading in km")


class TireResponse(BaseModel):
    id: int
    serial_number: str
    brand: str
    size: str
    purchase_date: date
    installation_date: Optional[date]
    installation_odometer: int
    current_odometer: int
    wear_percentage: float
    status: TireStatus
    owner_type: VehicleType
    owner_id: int
    retired_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TireWearSnapshot(BaseModel):
    """Wear state of a tire after a route completion."""
    id: int
    serial_number: str
    owner_type: VehicleType
    owner_id: int
    current_odometer: int
    wear_percentage: float
    status: TireStatus

    class Config:
        from_attributes = True
