"""
Route database model.

A route is one planned trip of a truck and driver between two locations.
"""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base, unique_key_index
from backend.app.models.route_enums import RouteStatus


class Route(Base):
    """
    Route model.

    Status only moves through the route lifecycle service
    (PLANNED -> IN_PROGRESS -> COMPLETED, or -> CANCELLED).
    The version column is checked on every UPDATE so two writers that
    read the same state cannot both transition it.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification (stored upper-cased)
    route_number = Column(String(50), nullable=False, index=True)

    # Assignment
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    truck_id = Column(Integer, ForeignKey('trucks.id'), nullable=False, index=True)

    # Route details
    description = Column(String(500), nullable=False)
    departure_location = Column(String(255), nullable=False)
    arrival_location = Column(String(255), nullable=False)
    planned_distance = Column(Float, nullable=False)

    # Lifecycle
    status = Column(Enum(RouteStatus), default=RouteStatus.PLANNED, nullable=False, index=True)
    departure_odometer = Column(Integer, nullable=True)  # set at start
    arrival_odometer = Column(Integer, nullable=True)  # set at completion
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Trip report
    fuel_volume = Column(Float, nullable=True)  # liters
    fuel_cost = Column(Float, nullable=True)
    vehicle_remarks = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def actual_distance(self):
        if self.departure_odometer is None or self.arrival_odometer is None:
            return None
        return self.arrival_odometer - self.departure_odometer

    @property
    def fuel_consumption_rate(self):
        """Liters per 100 km, recomputed from the stored readings every time."""
        distance = self.actual_distance
        if not distance or distance <= 0 or self.fuel_volume is None:
            return None
        return (self.fuel_volume / distance) * 100

    def __repr__(self):
        return f"<Route(id={self.id}, number='{self.route_number}', status={self.status})>"


unique_key_index("uq_routes_route_number", Route.route_number, "Route")
