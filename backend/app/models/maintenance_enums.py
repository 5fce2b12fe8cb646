"""
Maintenance enumerations.
"""

import enum


class MaintenanceType(str, enum.Enum):
    """Maintenance category covered by a rule or a record."""
    OIL_CHANGE = "OIL_CHANGE"
    TIRE_REPLACEMENT = "TIRE_REPLACEMENT"
    TIRE_ROTATION = "TIRE_ROTATION"
    BRAKE_CHECK = "BRAKE_CHECK"
    BRAKE_REPLACEMENT = "BRAKE_REPLACEMENT"
    GENERAL_INSPECTION = "GENERAL_INSPECTION"
    ENGINE_REPAIR = "ENGINE_REPAIR"
    TRANSMISSION_REPAIR = "TRANSMISSION_REPAIR"
    SUSPENSION_REPAIR = "SUSPENSION_REPAIR"
    ELECTRICAL_REPAIR = "ELECTRICAL_REPAIR"
    BODY_WORK = "BODY_WORK"
    OTHER = "OTHER"


class MaintenanceStatus(str, enum.Enum):
    """Maintenance record status."""
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


OPEN_MAINTENANCE_STATUSES = frozenset({MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS})


class MaintenancePriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
