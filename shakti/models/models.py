from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from shakti.database.database import Base
from shakti.schemas.enums import (
    SOSStatus, SOSPriority, TriggerSource,
    NotificationStatus, ContactRelationship
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- USER ----------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=False, index=True)
    fcm_token = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # lastKnownLocation snapshot, refreshed on every SOS trigger
    last_latitude = Column(Float, nullable=True)
    last_longitude = Column(Float, nullable=True)
    last_address = Column(String, nullable=True)
    last_location_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    trusted_contacts = relationship(
        "TrustedContact",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="TrustedContact.id",
    )
    sos_requests = relationship(
        "SOSRequest",
        back_populates="user",
        foreign_keys="SOSRequest.user_id",
    )


# ---------- TRUSTED CONTACT ----------
class TrustedContact(Base):
    __tablename__ = "trusted_contacts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, nullable=True)
    relationship_type = Column(
        "relationship", SQLEnum(ContactRelationship), nullable=False, default=ContactRelationship.FRIEND
    )
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="trusted_contacts")


# ---------- SOS REQUEST ----------
class SOSRequest(Base):
    __tablename__ = "sos_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Snapshot of the triggering user at creation time
    user_name = Column(String, nullable=False)
    user_phone = Column(String, nullable=False)
    user_email = Column(String, nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=False)
    accuracy = Column(Float, nullable=True)

    status = Column(SQLEnum(SOSStatus), default=SOSStatus.ACTIVE, nullable=False, index=True)
    priority = Column(SQLEnum(SOSPriority), default=SOSPriority.HIGH, nullable=False)
    triggered_by = Column(SQLEnum(TriggerSource), default=TriggerSource.BUTTON, nullable=False)
    message = Column(String(500), nullable=False, default="Emergency SOS activated")

    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="sos_requests", foreign_keys=[user_id])
    trusted_contacts_notified = relationship(
        "SOSContactNotification",
        back_populates="sos_request",
        cascade="all, delete-orphan",
        order_by="SOSContactNotification.position",
    )
    notes = relationship(
        "SOSNote",
        back_populates="sos_request",
        cascade="all, delete-orphan",
        order_by="SOSNote.id",
    )


# ---------- SOS CONTACT NOTIFICATION ----------
class SOSContactNotification(Base):
    __tablename__ = "sos_contact_notifications"

    id = Column(Integer, primary_key=True, index=True)
    sos_request_id = Column(Integer, ForeignKey("sos_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Contact snapshot; contact_id is not a FK so history survives contact deletion
    contact_id = Column(Integer, nullable=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    notified_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    notification_status = Column(SQLEnum(NotificationStatus), default=NotificationStatus.SENT, nullable=False)
    response_received = Column(Boolean, nullable=False, default=False)

    sos_request = relationship("SOSRequest", back_populates="trusted_contacts_notified")


# ---------- SOS NOTE ----------
class SOSNote(Base):
    __tablename__ = "sos_notes"

    id = Column(Integer, primary_key=True, index=True)
    sos_request_id = Column(Integer, ForeignKey("sos_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    added_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL = system
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    sos_request = relationship("SOSRequest", back_populates="notes")
