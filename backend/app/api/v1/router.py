"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import admin, auth, vehicles, tires, drivers, routes, maintenance

router = APIRouter()

router.include_router(auth.router)
router.include_router(admin.router)

# Fleet registry
router.include_router(vehicles.trucks_router)
router.include_router(vehicles.trailers_router)
router.include_router(tires.router)
router.include_router(drivers.router)

# Route lifecycle
router.include_router(routes.router)

# Maintenance rules, records and due checks
router.include_router(maintenance.router)
