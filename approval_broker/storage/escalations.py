"""Append-only escalation log."""

from __future__ import annotations

from typing import List

from sqlalchemy import select

from approval_broker.db import Store
from approval_broker.models import EscalationRecord
from approval_broker.schemas import ContactChannel, EmailRecipient, Escalation, EscalationEntry, ensure_utc

from .base import from_json, to_json

FUNCTION_CALL_KIND = "function_call"
HUMAN_CONTACT_KIND = "human_contact"


class EscalationRepository:
    def __init__(self, store: Store) -> None:
        self._store = store

    def append(self, *, kind: str, call_id: str, escalation: Escalation) -> EscalationEntry:
        with self._store.session_scope() as session:
            record = EscalationRecord(
                kind=kind,
                call_id=call_id,
                escalation_msg=escalation.escalation_msg,
                channel_json=(
                    to_json(escalation.channel.model_dump(exclude_none=True)) if escalation.channel else None
                ),
                additional_recipients_json=(
                    to_json([item.model_dump(exclude_none=True) for item in escalation.additional_recipients])
                    if escalation.additional_recipients is not None
                    else None
                ),
            )
            session.add(record)
            session.flush()
            session.refresh(record)
            return _to_entry(record)

    def list_for(self, *, kind: str, call_id: str) -> List[EscalationEntry]:
        with self._store.session_scope() as session:
            rows = session.execute(
                select(EscalationRecord)
                .where(EscalationRecord.kind == kind, EscalationRecord.call_id == call_id)
                .order_by(EscalationRecord.created_at, EscalationRecord.id)
            ).scalars()
            return [_to_entry(row) for row in rows]


def _to_entry(record: EscalationRecord) -> EscalationEntry:
    channel = from_json(record.channel_json)
    recipients = from_json(record.additional_recipients_json)
    return EscalationEntry(
        id=record.id,
        call_id=record.call_id,
        kind=record.kind,
        escalation_msg=record.escalation_msg,
        channel=ContactChannel.model_validate(channel) if channel is not None else None,
        additional_recipients=(
            [EmailRecipient.model_validate(item) for item in recipients] if recipients is not None else None
        ),
        created_at=ensure_utc(record.created_at),
    )
