"""
Route Pydantic schemas.

Defines request and response models for route planning and the
start/complete/cancel lifecycle.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.route_enums import RouteStatus
from backend.app.models.vehicle_enums import VehicleStatus
from backend.app.schemas.tire import TireWearSnapshot


class RouteCreate(BaseModel):
    """Schema for planning a route."""
    route_number: str = Field(..., min_length=1, max_length=50, description="Unique route number (case-insensitive)")
    driver_id: int
    truck_id: int
    description: str = Field(..., min_length=1, max_length=500)
    departure_location: str = Field(..., min_length=1, max_length=255)
    arrival_location: str = Field(..., min_length=1, max_length=255)
    planned_distance: float = Field(..., ge=0, description="Planned distance in km")
    fuel_volume: Optional[float] = Field(None, ge=0)
    fuel_cost: Optional[float] = Field(None, ge=0)
    vehicle_remarks: Optional[str] = None


class RouteUpdate(BaseModel):
    """
    Editable route fields.

    Odometer readings and status only change through start/complete/cancel;
    unknown keys are rejected.
    """
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    departure_location: Optional[str] = Field(None, min_length=1, max_length=255)
    arrival_location: Optional[str] = Field(None, min_length=1, max_length=255)
    planned_distance: Optional[float] = Field(None, ge=0)
    vehicle_remarks: Optional[str] = None
    fuel_volume: Optional[float] = Field(None, ge=0)
    fuel_cost: Optional[float] = Field(None, ge=0)
    driver_id: Optional[int] = None
    truck_id: Optional[int] = None

    class Config:
        extra = "forbid"


class RouteStart(BaseModel):
    departure_odometer: int = Field(..., description="Truck odometer at departure in km")


class RouteComplete(BaseModel):
    arrival_odometer: int = Field(..., description="Truck odometer at arrival in km")
    fuel_volume: Optional[float] = Field(None, description="Fuel used in liters (defaults to 0)")
    fuel_cost: Optional[float] = None
    remarks: Optional[str] = None


class RouteCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RouteResponse(BaseModel):
    id: int
    route_number: str
    driver_id: int
    truck_id: int
    description: str
    departure_location: str
    arrival_location: str
    planned_distance: float
    status: RouteStatus
    departure_odometer: Optional[int]
    arrival_odometer: Optional[int]
    actual_distance: Optional[int]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    fuel_volume: Optional[float]
    fuel_cost: Optional[float]
    fuel_consumption_rate: Optional[float] = Field(None, description="Liters per 100 km")
    vehicle_remarks: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VehicleOdometerSnapshot(BaseModel):
    id: int
    registration_number: str
    current_odometer: int
    status: VehicleStatus

    class Config:
        from_attributes = True


class RouteCompletionResponse(BaseModel):
    """Completed route plus every reading the completion advanced."""
    route: RouteResponse
    truck: VehicleOdometerSnapshot
    trailer: Optional[VehicleOdometerSnapshot] = None
    tires: List[TireWearSnapshot] = []
