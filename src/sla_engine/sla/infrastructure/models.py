"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

`sla_policies` is owned by this module. The request tables belong to the
services that create those requests; they are mapped here only for the
columns the SLA sweep reads (deadline, timestamps, status) and writes
(`sla_status`). Column names differ per kind and are reconciled by
RequestKindMapping in the repositories module.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sla_engine.config import Priority, SLAStatus
from sla_engine.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy entity.

    Maps to the 'sla_policies' table.
    """
    __tablename__ = "sla_policies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    request_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.NORMAL.value)

    # Budget in minutes
    response_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    escalation_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # One active policy per (type, priority) is enforced by the service layer
    __table_args__ = (
        UniqueConstraint("name", name="uq_sla_policies_name"),
    )


class RequestSLAColumnsMixin:
    """Columns every request kind shares."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)
    subscriber_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_provider_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA tracking
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, default=SLAStatus.ON_TRACK.value)


class ConsultationRequestModel(RequestSLAColumnsMixin, Base):
    """Consultations carry their own urgency and record the first response."""
    __tablename__ = "consultation_requests"

    request_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    urgency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class LegalOpinionRequestModel(RequestSLAColumnsMixin, Base):
    __tablename__ = "legal_opinion_requests"

    request_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ServiceRequestModel(RequestSLAColumnsMixin, Base):
    __tablename__ = "service_requests"

    request_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class LitigationCaseModel(RequestSLAColumnsMixin, Base):
    """Litigation cases are numbered as cases and closed rather than completed."""
    __tablename__ = "litigation_cases"

    case_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CallRequestModel(RequestSLAColumnsMixin, Base):
    __tablename__ = "call_requests"

    request_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
