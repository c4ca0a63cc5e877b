"""Pydantic models describing function calls, human contacts, and their statuses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ResponseOption(BaseModel):
    name: str = Field(..., min_length=1)
    title: str | None = None
    description: str | None = None
    prompt_fill: str | None = None
    interactive: bool | None = None

    @property
    def label(self) -> str:
        return self.title or self.name


class EmailRecipient(BaseModel):
    address: str
    field: Literal["to", "cc", "bcc"]
    context_about_user: str | None = None


class SlackContactChannel(BaseModel):
    channel_or_user_id: str = Field(..., min_length=1)
    context_about_channel_or_user: str | None = None
    bot_token: str | None = None
    experimental_slack_blocks: bool | None = None
    thread_ts: str | None = None


class EmailContactChannel(BaseModel):
    address: str
    context_about_user: str | None = None
    additional_recipients: List[EmailRecipient] | None = None
    experimental_subject_line: str | None = None
    experimental_in_reply_to_message_id: str | None = None
    experimental_references_message_id: str | None = None
    template: str | None = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        trimmed = value.strip()
        local, _, domain = trimmed.partition("@")
        if not local or not domain:
            raise ValueError("address must be a valid email address")
        return trimmed


class SMSContactChannel(BaseModel):
    phone_number: str = Field(..., min_length=1)
    context_about_user: str | None = None


class WhatsAppContactChannel(BaseModel):
    phone_number: str = Field(..., min_length=1)
    context_about_user: str | None = None


class ContactChannel(BaseModel):
    """Where a human should be reached; only the Slack variant is delivered today."""

    slack: SlackContactChannel | None = None
    email: EmailContactChannel | None = None
    sms: SMSContactChannel | None = None
    whatsapp: WhatsAppContactChannel | None = None

    def configured_kinds(self) -> List[str]:
        return [kind for kind in ("slack", "email", "sms", "whatsapp") if getattr(self, kind) is not None]


class Escalation(BaseModel):
    escalation_msg: str = Field(..., min_length=1)
    additional_recipients: List[EmailRecipient] | None = None
    channel: ContactChannel | None = None


class EscalationEntry(BaseModel):
    id: int
    call_id: str
    kind: str
    escalation_msg: str
    channel: ContactChannel | None = None
    additional_recipients: List[EmailRecipient] | None = None
    created_at: datetime


class FunctionCallSpec(BaseModel):
    fn: str = Field(..., min_length=1)
    kwargs: Dict[str, Any]
    channel: ContactChannel | None = None
    reject_options: List[ResponseOption] | None = None
    state: Dict[str, Any] | None = None


class FunctionCallStatus(BaseModel):
    requested_at: datetime | None = None
    responded_at: datetime | None = None
    approved: bool | None = None
    comment: str | None = None
    reject_option_name: str | None = None
    slack_message_ts: str | None = None

    @field_validator("requested_at", "responded_at")
    @classmethod
    def _normalise_time(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def is_resolved(self) -> bool:
        return self.responded_at is not None


class FunctionCall(BaseModel):
    run_id: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)
    spec: FunctionCallSpec
    status: FunctionCallStatus | None = None


class HumanContactSpec(BaseModel):
    msg: str
    subject: str | None = None
    channel: ContactChannel | None = None
    response_options: List[ResponseOption] | None = None
    state: Dict[str, Any] | None = None

    def find_option(self, name: str) -> ResponseOption | None:
        for option in self.response_options or []:
            if option.name == name:
                return option
        return None


class HumanContactStatus(BaseModel):
    requested_at: datetime | None = None
    responded_at: datetime | None = None
    response: str | None = None
    response_option_name: str | None = None

    @field_validator("requested_at", "responded_at")
    @classmethod
    def _normalise_time(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def is_resolved(self) -> bool:
        return self.responded_at is not None


class HumanContact(BaseModel):
    run_id: str = Field(..., min_length=1)
    call_id: str = Field(..., min_length=1)
    spec: HumanContactSpec
    status: HumanContactStatus | None = None


class StatusPatch(BaseModel):
    """Sparse status update.

    Only fields the caller explicitly set are written; an explicit ``None``
    clears the column, an omitted field leaves it untouched.
    """

    responded_at: datetime | None = None

    @field_validator("responded_at")
    @classmethod
    def _normalise_time(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    def update_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class FunctionCallStatusPatch(StatusPatch):
    approved: bool | None = None
    comment: str | None = None
    reject_option_name: str | None = None


class HumanContactStatusPatch(StatusPatch):
    response: str | None = None
    response_option_name: str | None = None


class FunctionCallResponse(FunctionCallStatusPatch):
    """Body accepted by the function call respond endpoint."""

    approved: bool


class HumanContactResponse(HumanContactStatusPatch):
    """Body accepted by the human contact respond endpoint."""

    response: str


def dump(model: BaseModel) -> Dict[str, Any]:
    """Serialise for the wire, omitting unset/absent fields."""

    return model.model_dump(mode="json", exclude_none=True)
