"""
Driver Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional


class DriverCreate(BaseModel):
    """
    Schema for creating a driver profile.

    Either link an existing DRIVER user (user_id) or create the account
    in the same call (email, username, password).
    """
    license_number: str = Field(..., min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    user_id: Optional[int] = None
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6)
    full_name: Optional[str] = Field(None, max_length=200)


class DriverUpdate(BaseModel):
    phone: Optional[str] = Field(None, max_length=30)
    full_name: Optional[str] = Field(None, max_length=200)


class DriverResponse(BaseModel):
    id: int
    user_id: int
    license_number: str
    phone: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
