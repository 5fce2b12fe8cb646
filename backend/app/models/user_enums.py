"""Account roles."""

import enum


class UserRole(str, enum.Enum):
    # Manages trucks, trailers, tires, drivers, routes and maintenance
    ADMIN = "ADMIN"
    # Reads the fleet and runs the routes assigned to their driver profile
    DRIVER = "DRIVER"
