"""Database models for the cycle wellness service.

## Security Notes

- OAuth tokens are encrypted at rest using Fernet symmetric encryption
- The encryption key is derived from the application secret
- PostgreSQL should be configured with SSL and disk encryption
- Symptom logs and chat history are health data: restrict database access

## Schema Overview

```
users
├── user_profiles (1:1)
├── user_cycles (1:N, latest start_date wins)
├── symptom_logs (1:N, one per day)
├── oauth_tokens (1:N, one per provider) - encrypted
├── events (1:N)
│   └── event_ai_suggestions (1:1)
├── event_move_suggestions (1:N)
├── chat_messages (1:N)
├── notifications (1:N)
├── wellness_predictions (1:N, one per day)
├── calendar_watch_channels (1:1)
├── api_rate_limits (1:N)
└── ai_retry_logs / ai_operation_metrics / ai_error_notifications (1:N)

energy_reference (standalone coefficient catalogue)
```
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    type_annotation_map = {
        dict[str, Any]: JSONType,
        list[str]: JSONType,
        uuid.UUID: Uuid(as_uuid=True),
    }


class TokenProvider(str, Enum):
    """OAuth providers with stored tokens."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"


class EventSource(str, Enum):
    """Where a calendar event came from."""

    MANUAL = "manual"
    GOOGLE = "google"
    OUTLOOK = "outlook"


class MoveStatus(str, Enum):
    """Lifecycle of an event move suggestion."""

    PENDING = "pending"
    EMAIL_SENT = "email_sent"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class User(Base):
    """User account model.

    Users sign in with Google; a Microsoft account can be linked later to
    import Outlook calendars.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    google_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    microsoft_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    name: Mapped[str | None] = mapped_column(String(255))
    picture_url: Mapped[str | None] = mapped_column(String(512))

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    oauth_tokens: Mapped[list["OAuthToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class UserProfile(Base):
    """Personal details used to tailor AI answers."""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True
    )
    name: Mapped[str | None] = mapped_column(String(255))
    age: Mapped[int | None] = mapped_column(Integer)
    weight: Mapped[float | None] = mapped_column(Float)  # kg
    height: Mapped[float | None] = mapped_column(Float)  # cm
    timezone: Mapped[str | None] = mapped_column(String(64))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserProfile user_id={self.user_id}>"


class UserCycle(Base):
    """Menstrual cycle parameters.

    A user may record several cycles; the one with the latest start_date is
    the current one.
    """

    __tablename__ = "user_cycles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    cycle_length: Mapped[int] = mapped_column(Integer, default=28)
    menstrual_length: Mapped[int] = mapped_column(Integer, default=5)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("ix_user_cycles_user_start", "user_id", "start_date"),)

    def __repr__(self) -> str:
        return f"<UserCycle start={self.start_date} length={self.cycle_length}>"


class SymptomLog(Base):
    """Daily self-reported wellbeing."""

    __tablename__ = "symptom_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    log_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    wellness_index: Mapped[int | None] = mapped_column(Integer)  # 0-100
    energy: Mapped[int | None] = mapped_column(Integer)  # 1-5
    mood: Mapped[list[str] | None] = mapped_column(JSONType)
    physical_symptoms: Mapped[list[str] | None] = mapped_column(JSONType)
    sleep_quality: Mapped[int | None] = mapped_column(Integer)  # 1-5
    stress_level: Mapped[int | None] = mapped_column(Integer)  # 1-5
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_symptom_log_user_date"),
    )

    def __repr__(self) -> str:
        return f"<SymptomLog {self.log_date} wellness={self.wellness_index}>"


class OAuthToken(Base):
    """OAuth tokens for external services.

    Tokens are encrypted at rest. The encryption happens in the service layer,
    not at the database level, to allow for key rotation.
    """

    __tablename__ = "oauth_tokens"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )

    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    provider_user_id: Mapped[str | None] = mapped_column(String(255))

    # Tokens (encrypted)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text)
    token_type: Mapped[str] = mapped_column(String(32), default="Bearer")

    scope: Mapped[str | None] = mapped_column(Text)  # Space-separated scopes
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="oauth_tokens")

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_provider"),
        Index("ix_oauth_tokens_user_provider", "user_id", "provider"),
    )

    def __repr__(self) -> str:
        return f"<OAuthToken provider={self.provider} user_id={self.user_id}>"


class Event(Base):
    """A calendar event, either entered manually or imported from a provider."""

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    source: Mapped[str] = mapped_column(String(16), default=EventSource.MANUAL.value)
    external_event_id: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_events_user_start", "user_id", "start_time"),
        Index("ix_events_external", "user_id", "external_event_id"),
    )

    @property
    def duration(self):
        return self.end_time - self.start_time

    def __repr__(self) -> str:
        return f"<Event {self.title[:30]}>"


class EventAISuggestion(Base):
    """AI advice attached to a single event."""

    __tablename__ = "event_ai_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), unique=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    suggestion: Mapped[str] = mapped_column(Text, nullable=False)
    justification: Mapped[str | None] = mapped_column(Text)
    decision: Mapped[str] = mapped_column(String(16), default="generated")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class EventMoveSuggestion(Base):
    """A proposal to reschedule an event, possibly negotiated by email."""

    __tablename__ = "event_move_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    event_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL")
    )

    event_title: Mapped[str] = mapped_column(String(512), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    suggested_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    suggested_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    status: Mapped[str] = mapped_column(String(16), default=MoveStatus.PENDING.value)
    thread_id: Mapped[str | None] = mapped_column(String(128))
    participants: Mapped[list[str] | None] = mapped_column(JSONType)
    email_subject: Mapped[str | None] = mapped_column(String(512))
    email_body: Mapped[str | None] = mapped_column(Text)
    reply_text: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_move_suggestions_user_status", "user_id", "status"),
        Index("ix_move_suggestions_thread", "thread_id"),
    )


class ChatMessage(Base):
    """One turn of the wellness chat."""

    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # user, assistant, system
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (Index("ix_chat_messages_user_created", "user_id", "created_at"),)


class Notification(Base):
    """In-app reminder."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_for: Mapped[date] = mapped_column(Date, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "notification_type", "scheduled_for", name="uq_notification_day"
        ),
    )


class EnergyReference(Base):
    """Reference coefficients for an activity type.

    Seeded from `cycle_wellness.energy.coefficients`.
    """

    __tablename__ = "energy_reference"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    event_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)

    base: Mapped[float] = mapped_column(Float, nullable=False)
    menstrual: Mapped[float] = mapped_column(Float, default=0.0)
    follicular: Mapped[float] = mapped_column(Float, default=0.0)
    ovulation: Mapped[float] = mapped_column(Float, default=0.0)
    luteal: Mapped[float] = mapped_column(Float, default=0.0)
    morning: Mapped[float] = mapped_column(Float, default=0.0)
    afternoon: Mapped[float] = mapped_column(Float, default=0.0)
    evening: Mapped[float] = mapped_column(Float, default=0.0)
    stress_coefficient: Mapped[float] = mapped_column(Float, default=0.0)

    def __repr__(self) -> str:
        return f"<EnergyReference {self.event_name}>"


class WellnessPrediction(Base):
    """Predicted wellness index for one day."""

    __tablename__ = "wellness_predictions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    prediction_date: Mapped[date] = mapped_column(Date, nullable=False)
    predicted_wellness: Mapped[int] = mapped_column(Integer, nullable=False)
    cycle_day: Mapped[int | None] = mapped_column(Integer)
    phase: Mapped[str | None] = mapped_column(String(16))
    note: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(16), default="baseline")  # baseline, ai

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "prediction_date", name="uq_prediction_user_date"),
    )


class CalendarWatchChannel(Base):
    """Google Calendar push notification channel."""

    __tablename__ = "calendar_watch_channels"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True
    )
    channel_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(255))
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    expiration: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ApiRateLimit(Base):
    """Request counter for one user, endpoint and one-minute window."""

    __tablename__ = "api_rate_limits"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    endpoint: Mapped[str] = mapped_column(String(64), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", "window_start", name="uq_rate_window"),
    )


class AIRetryLog(Base):
    """One retried AI call."""

    __tablename__ = "ai_retry_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    operation_type: Mapped[str] = mapped_column(String(64), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


class AIOperationMetric(Base):
    """Timing and outcome of one AI operation."""

    __tablename__ = "ai_operation_metrics"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    operation_type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # success, error, timeout
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (Index("ix_ai_metrics_user_created", "user_id", "created_at"),)


class AIErrorNotification(Base):
    """An AI failure surfaced to the user."""

    __tablename__ = "ai_error_notifications"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    operation_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), default="medium")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
