"""
Tagged vehicle references.

A tire or a maintenance rule belongs either to a truck or to a trailer.
Rather than passing an id plus a free-form type string around, callers
hold one of two small value types and dispatch on the type.
"""

from dataclasses import dataclass
from typing import Union

from backend.app.models.vehicle_enums import VehicleType


@dataclass(frozen=True)
class TruckRef:
    """Reference to a row in ``trucks``."""
    id: int

    @property
    def vehicle_type(self) -> VehicleType:
        return VehicleType.TRUCK


@dataclass(frozen=True)
class TrailerRef:
    """Reference to a row in ``trailers``."""
    id: int

    @property
    def vehicle_type(self) -> VehicleType:
        return VehicleType.TRAILER


VehicleRef = Union[TruckRef, TrailerRef]


def vehicle_ref(vehicle_type: VehicleType, vehicle_id: int) -> VehicleRef:
    """Build the tagged reference for a stored (type, id) pair."""
    vehicle_type = VehicleType(vehicle_type)
    if vehicle_type is VehicleType.TRUCK:
        return TruckRef(vehicle_id)
    if vehicle_type is VehicleType.TRAILER:
        return TrailerRef(vehicle_id)
    raise ValueError(f"Unknown vehicle type: {vehicle_type}")


def describe(ref: VehicleRef) -> str:
    """Human label used in error messages ("Truck", "Trailer")."""
    if isinstance(ref, TruckRef):
        return "Truck"
    if isinstance(ref, TrailerRef):
        return "Trailer"
    raise TypeError(f"Not a vehicle reference: {ref!r}")
