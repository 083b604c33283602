"""
SQLAlchemy ORM Models for the Staff Verification Service
"""
import uuid

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from staff_verify.db.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Applicant user record"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    store_id = Column(String(64), ForeignKey("stores.id"))
    # none | pending | approved | rejected
    verification_status = Column(String(20), nullable=False, default="none")
    is_verified = Column(Boolean, nullable=False, default=False)
    rejection_reason = Column(String(50))
    verified_at = Column(DateTime)
    last_verification_submission = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    verification_requests = relationship("VerificationRequest", back_populates="applicant")


class Store(Base):
    """Store reference data (managed by roster import)"""
    __tablename__ = "stores"

    id = Column(String(64), primary_key=True)
    name = Column(String(255))
    address = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    roster = relationship("RosterEntry", back_populates="store")


class RosterEntry(Base):
    """Store-scoped staff roster; (store_id, email) is the natural key"""
    __tablename__ = "store_roster"

    store_id = Column(String(64), ForeignKey("stores.id"), primary_key=True)
    email = Column(String(255), primary_key=True)
    email_lower = Column(String(255), nullable=False)
    name = Column(String(255))
    normalized_name = Column(String(255))
    store_name = Column(String(255))
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    store = relationship("Store", back_populates="roster")

    __table_args__ = (
        Index('idx_store_roster_email_lower', 'store_id', 'email_lower'),
    )


class VerificationRequest(Base):
    """One staff verification submission attempt; retained as an audit trail"""
    __tablename__ = "verification_requests"

    id = Column(String(64), primary_key=True, default=_new_id)
    applicant_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    store_id = Column(String(64))
    # Identity snapshot taken at submission
    applicant_email = Column(String(255))
    applicant_name = Column(String(255))
    # Evidence
    photo_url = Column(Text)
    code_image_url = Column(Text)
    submitted_code = Column(String(100))
    daily_code = Column(String(20))
    code_matches = Column(Boolean)
    # Location evidence
    device_latitude = Column(Float)
    device_longitude = Column(Float)
    device_captured_at_ms = Column(BigInteger)
    exif_has_gps = Column(Boolean)
    exif_latitude = Column(Float)
    exif_longitude = Column(Float)
    # Derived by the score engine only
    auto_score = Column(Integer)
    reasons = Column(JSONType)
    distance_meters = Column(Integer)
    location_source = Column(String(10))
    scored_at = Column(DateTime)
    # Review
    status = Column(String(20), nullable=False, default="pending")
    admin_message = Column(Text)  # legacy single-message field, read-only
    rejection_reason = Column(String(50))
    reviewed_by = Column(String(64))
    reviewed_at = Column(DateTime)
    submitted_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    applicant = relationship("User", back_populates="verification_requests")
    info_requests = relationship(
        "VerificationInfoRequest",
        back_populates="request",
        order_by="VerificationInfoRequest.id"
    )
    messages = relationship(
        "VerificationMessage",
        back_populates="request",
        order_by="VerificationMessage.id"
    )

    __table_args__ = (
        Index('idx_verification_requests_status', 'status'),
        Index('idx_verification_requests_applicant', 'applicant_id'),
        Index('idx_verification_requests_store', 'store_id'),
        Index('idx_verification_requests_submitted', 'submitted_at'),
    )


class VerificationInfoRequest(Base):
    """Append-only follow-up questions from reviewers"""
    __tablename__ = "verification_info_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(64), ForeignKey("verification_requests.id"), nullable=False)
    admin_id = Column(String(64))
    message = Column(Text, nullable=False)
    created_at_ms = Column(BigInteger, nullable=False)

    request = relationship("VerificationRequest", back_populates="info_requests")


class VerificationMessage(Base):
    """Append-only applicant replies"""
    __tablename__ = "verification_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(64), ForeignKey("verification_requests.id"), nullable=False)
    author_id = Column(String(64))
    message = Column(Text, nullable=False)
    created_at_ms = Column(BigInteger, nullable=False)

    request = relationship("VerificationRequest", back_populates="messages")


class Notification(Base):
    """In-app notification; an email copy is delivered by the worker"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    link = Column(Text)
    meta = Column(JSONType)
    is_read = Column(Boolean, default=False)
    email_sent = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index('idx_notifications_recipient', 'recipient_id'),
    )
