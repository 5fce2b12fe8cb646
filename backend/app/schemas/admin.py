"""
Admin API Schema Definitions.

Pydantic schemas for user administration and the audit trail.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.schemas.auth import UserResponse


class AdminUserResponse(UserResponse):
    """An account as admins see it, with the linked driver profile if any."""
    driver_id: Optional[int] = None


class AccountStatusRequest(BaseModel):
    """Body of block/unblock; the reason is kept in the audit entry."""
    reason: Optional[str] = Field(None, max_length=500)


class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True
