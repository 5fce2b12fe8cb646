"""
Driver database model.

A driver profile links a DRIVER user account to a license.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Driver(Base):
    """Driver model. Routes reference drivers, drivers reference users."""
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False, index=True)
    license_number = Column(String(50), unique=True, nullable=False, index=True)
    phone = Column(String(30), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, user_id={self.user_id}, license='{self.license_number}')>"
