"""
Route-related enumerations.
"""

import enum


class RouteStatus(str, enum.Enum):
    """
    Route lifecycle status.

    PLANNED: Created, truck not yet departed
    IN_PROGRESS: Started, departure odometer recorded, truck IN_ROUTE
    COMPLETED: Arrived, odometers and tire wear propagated (terminal)
    CANCELLED: Abandoned before completion (terminal)
    """
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_ROUTE_STATUSES = frozenset({RouteStatus.COMPLETED, RouteStatus.CANCELLED})
