"""
Truck and trailer Pydantic schemas.

Defines request and response models for vehicle registration.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional
from backend.app.models.vehicle_enums import VehicleStatus


class TruckCreate(BaseModel):
    """Schema for registering a truck."""
    registration_number: str = Field(..., min_length=1, max_length=50, description="Unique registration number (case-insensitive)")
    model: str = Field(..., min_length=1, max_length=100)
    year: int = Field(..., ge=1900, le=2100)
    purchase_date: date
    current_odometer: int = Field(0, ge=0, description="Odometer reading in km")
    fuel_capacity: float = Field(..., gt=0, description="Fuel tank capacity in liters")
    status: Optional[VehicleStatus] = Field(None, description="Defaults to AVAILABLE")


class TruckUpdate(BaseModel):
    """Editable truck fields. Odometer and status have dedicated operations."""
    model: Optional[str] = Field(None, min_length=1, max_length=100)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    purchase_date: Optional[date] = None
    fuel_capacity: Optional[float] = Field(None, gt=0)


class TruckResponse(BaseModel):
    id: int
    registration_number: str
    model: str
    year: int
    purchase_date: date
    current_odometer: int
    fuel_capacity: float
    status: VehicleStatus
    trailer_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TrailerCreate(BaseModel):
    """Schema for registering a trailer."""
    registration_number: str = Field(..., min_length=1, max_length=50)
    brand: str = Field(..., min_length=1, max_length=100)
    year: int = Field(..., ge=1900, le=2100)
    purchase_date: date
    current_odometer: int = Field(0, ge=0)
    max_load: float = Field(..., gt=0, description="Maximum load in kg")
    status: Optional[VehicleStatus] = None


class TrailerUpdate(BaseModel):
    brand: Optional[str] = Field(None, min_length=1, max_length=100)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    purchase_date: Optional[date] = None
    max_load: Optional[float] = Field(None, gt=0)


class TrailerResponse(BaseModel):
    id: int
    registration_number: str
    brand: str
    year: int
    purchase_date: date
    current_odometer: int
    max_load: float
    status: VehicleStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OdometerUpdate(BaseModel):
    """Manual odometer reading; may only move forward."""
    odometer: int = Field(..., ge=0)


class StatusUpdate(BaseModel):
    status: VehicleStatus


class TrailerAttach(BaseModel):
    trailer_id: int
