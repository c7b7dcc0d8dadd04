"""
SQLAlchemy ORM models for the database schema.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from snowshield.db import Base


class Incident(Base):
    """
    User-reported incident or SOS alert.
    Collection: incidents
    """
    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, index=True)
    type = Column(String(16), nullable=False, index=True)   # 'regular' | 'SOS'
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    pincode = Column(String(16), nullable=False, index=True)
    location = Column(Text, nullable=True)
    photos = Column(JSON, nullable=False, default=list)     # ordered download URLs
    risk_level = Column(String(16), nullable=True)          # 'Low' | 'Medium' | 'High' | 'Extreme'
    reported_by = Column(String(36), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=True, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(36), nullable=True)


class SafetyWarning(Base):
    """
    Administrator-issued advisory scoped to a set of pincodes.
    Collection: warnings
    """
    __tablename__ = "warnings"

    id = Column(String(36), primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    severity = Column(String(16), nullable=False)           # 'low' | 'medium' | 'high'
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    expiry_time = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(36), nullable=True)
    created_by_name = Column(Text, nullable=True)

    pincodes = relationship(
        "WarningPincode",
        back_populates="warning",
        cascade="all, delete-orphan",
        order_by="WarningPincode.position",
        lazy="selectin",
    )

    @property
    def affected_pincodes(self):
        return [p.pincode for p in self.pincodes]


class WarningPincode(Base):
    """One affected pincode of a warning (membership index)."""
    __tablename__ = "warning_pincodes"

    warning_id = Column(String(36), ForeignKey("warnings.id", ondelete="CASCADE"), primary_key=True)
    pincode = Column(String(16), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    warning = relationship("SafetyWarning", back_populates="pincodes")

    __table_args__ = (
        Index("ix_warning_pincodes_pincode", "pincode"),
    )


class Account(Base):
    """Sign-in credentials. Separate from the profile so a profile can be missing."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class UserProfile(Base):
    """
    User profile.
    Collection: users
    """
    __tablename__ = "users"

    id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), nullable=False)
    name = Column(Text, nullable=False, default="")
    phone = Column(String(32), nullable=False, default="")
    pincode = Column(String(16), nullable=True)
    user_type = Column(String(16), nullable=False, default="user")  # 'user' | 'rescueTeam' | 'admin'
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class AuthSession(Base):
    """Bearer token for one signed-in session."""
    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
