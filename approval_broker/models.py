"""SQLAlchemy models for approval requests, contacts, and API keys."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_broker.db import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FunctionCallRecord(Base):
    """A function call an agent wants a human to approve."""

    __tablename__ = "function_calls"

    call_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    fn: Mapped[str] = mapped_column(String(255), nullable=False)
    kwargs_json: Mapped[str] = mapped_column("kwargs", Text, nullable=False)
    channel_json: Mapped[str | None] = mapped_column("channel", Text, nullable=True)
    reject_options_json: Mapped[str | None] = mapped_column("reject_options", Text, nullable=True)
    state_json: Mapped[str | None] = mapped_column("state", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    status: Mapped["FunctionCallStatusRecord"] = relationship(
        "FunctionCallStatusRecord",
        back_populates="function_call",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FunctionCallStatusRecord(Base):
    """Resolution state for a function call; resolved once `responded_at` is set."""

    __tablename__ = "function_call_status"
    __table_args__ = (Index("idx_function_call_status_approved", "approved"),)

    call_id: Mapped[str] = mapped_column(
        ForeignKey("function_calls.call_id", ondelete="CASCADE"), primary_key=True
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    reject_option_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slack_message_ts: Mapped[str | None] = mapped_column(String(64), nullable=True)

    function_call: Mapped[FunctionCallRecord] = relationship("FunctionCallRecord", back_populates="status")


class HumanContactRecord(Base):
    """A free-text question an agent wants a human to answer."""

    __tablename__ = "human_contacts"

    call_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    msg: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str | None] = mapped_column(String(512), nullable=True)
    channel_json: Mapped[str | None] = mapped_column("channel", Text, nullable=True)
    response_options_json: Mapped[str | None] = mapped_column("response_options", Text, nullable=True)
    state_json: Mapped[str | None] = mapped_column("state", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    status: Mapped["HumanContactStatusRecord"] = relationship(
        "HumanContactStatusRecord",
        back_populates="human_contact",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class HumanContactStatusRecord(Base):
    """Answer state for a human contact; resolved once `responded_at` is set."""

    __tablename__ = "human_contact_status"

    call_id: Mapped[str] = mapped_column(
        ForeignKey("human_contacts.call_id", ondelete="CASCADE"), primary_key=True
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_option_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    human_contact: Mapped[HumanContactRecord] = relationship("HumanContactRecord", back_populates="status")


class EscalationRecord(Base):
    """Append-only log of escalations raised against a request."""

    __tablename__ = "escalations"
    __table_args__ = (Index("idx_escalations_kind_call", "kind", "call_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    call_id: Mapped[str] = mapped_column(String(255), nullable=False)
    escalation_msg: Mapped[str] = mapped_column(Text, nullable=False)
    channel_json: Mapped[str | None] = mapped_column("channel", Text, nullable=True)
    additional_recipients_json: Mapped[str | None] = mapped_column("additional_recipients", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ApiKey(Base):
    """Hashed bearer credential accepted by the HTTP API."""

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    key_prefix: Mapped[str | None] = mapped_column(String(16), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
