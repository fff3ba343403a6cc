from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, UUID, Double, Text, Boolean, Integer, TIMESTAMP, ForeignKey,
    Enum, JSON, UniqueConstraint, Index,
)
from sqlalchemy.orm import declarative_base, relationship
import uuid

Base = declarative_base()

CATEGORIES = ("roads", "lighting", "sanitation", "water", "parks", "safety", "noise", "other")
PRIORITIES = ("low", "medium", "high", "urgent")
STATUSES = ("submitted", "acknowledged", "in_progress", "resolved", "closed", "rejected")
TERMINAL_STATUSES = frozenset({"closed", "rejected"})
MEDIA_TYPES = ("image", "audio", "video")
NOTIFICATION_TYPES = ("report_submitted", "status_update", "assignment", "resolution", "feedback_request")

report_status = Enum(*STATUSES, name="report_status")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form both Postgres and SQLite hand back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Report(Base):
    __tablename__ = "reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Enum(*CATEGORIES, name="report_category"), nullable=False, default="other")
    priority = Column(Enum(*PRIORITIES, name="report_priority"), nullable=False, default="medium")
    status = Column(report_status, nullable=False, default="submitted")
    location_lat = Column(Double, nullable=True)
    location_lng = Column(Double, nullable=True)
    location_address = Column(Text, nullable=True)
    reporter_id = Column(String, nullable=True, index=True)
    reporter_name = Column(String, nullable=True)
    reporter_email = Column(String, nullable=True, index=True)
    reporter_phone = Column(String, nullable=True)
    department = Column(String, nullable=True, index=True)
    assigned_to = Column(String, nullable=True)
    citizen_rating = Column(Integer, nullable=True)
    citizen_feedback = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow, index=True)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    version = Column(Integer, nullable=False, default=1)

    updates = relationship("ReportUpdate", back_populates="report", cascade="all, delete-orphan")
    media = relationship("ReportMedia", back_populates="report", cascade="all, delete-orphan")
    votes = relationship("ReportVote", back_populates="report", cascade="all, delete-orphan")

    # Concurrent writers lose with StaleDataError instead of overwriting each other
    __mapper_args__ = {"version_id_col": version}


class ReportUpdate(Base):
    __tablename__ = "report_updates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(report_status, nullable=False)
    message = Column(Text, nullable=True)
    updated_by_name = Column(String, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="updates")


class ReportMedia(Base):
    __tablename__ = "report_media"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    media_type = Column(Enum(*MEDIA_TYPES, name="media_type"), nullable=False)
    file_url = Column(Text, nullable=False)
    file_name = Column(String, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="media")


class ReportVote(Base):
    __tablename__ = "report_votes"
    __table_args__ = (
        UniqueConstraint("report_id", "voter_id", name="uq_report_votes_report_voter"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    voter_id = Column(String, nullable=False)
    voter_email = Column(String, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="votes")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=True, index=True)
    report_id = Column(UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE"), nullable=True)
    type = Column(Enum(*NOTIFICATION_TYPES, name="notification_type"), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    push_sent = Column(Boolean, nullable=False, default=False)
    email_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(String, nullable=False, index=True)
    report_id = Column(UUID(as_uuid=True), nullable=True)
    department = Column(String, nullable=True)
    category = Column(String, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)


Index("ix_report_updates_report_created", ReportUpdate.report_id, ReportUpdate.created_at)
