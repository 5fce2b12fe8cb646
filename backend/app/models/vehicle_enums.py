"""
Vehicle and tire enumerations.
"""

import enum


class VehicleType(str, enum.Enum):
    """Kind of vehicle a tire or maintenance rule is attached to."""
    TRUCK = "TRUCK"
    TRAILER = "TRAILER"


class VehicleStatus(str, enum.Enum):
    """Operational status shared by trucks and trailers."""
    AVAILABLE = "AVAILABLE"
    IN_ROUTE = "IN_ROUTE"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class TireStatus(str, enum.Enum):
    """
    Tire wear tier, derived from wear percentage.

    GOOD: below the warning threshold
    WARNING: at or above 60%
    NEED_REPLACEMENT: at or above 80%
    """
    GOOD = "GOOD"
    WARNING = "WARNING"
    NEED_REPLACEMENT = "NEED_REPLACEMENT"
