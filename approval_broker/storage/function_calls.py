"""Persistence for function call approval requests."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import update

from approval_broker.models import FunctionCallRecord, FunctionCallStatusRecord
from approval_broker.schemas import (
    ContactChannel,
    FunctionCall,
    FunctionCallSpec,
    FunctionCallStatus,
    ResponseOption,
    ensure_utc,
)

from .base import StatusRepository, from_json, to_json


class FunctionCallRepository(StatusRepository[FunctionCall]):
    record_model = FunctionCallRecord
    status_model = FunctionCallStatusRecord

    def _to_records(self, entity: FunctionCall) -> tuple[FunctionCallRecord, FunctionCallStatusRecord]:
        spec = entity.spec
        record = FunctionCallRecord(
            call_id=entity.call_id,
            run_id=entity.run_id,
            fn=spec.fn,
            kwargs_json=to_json(spec.kwargs),
            channel_json=to_json(spec.channel.model_dump(exclude_none=True)) if spec.channel else None,
            reject_options_json=(
                to_json([option.model_dump(exclude_none=True) for option in spec.reject_options])
                if spec.reject_options is not None
                else None
            ),
            state_json=to_json(spec.state),
        )
        status = entity.status or FunctionCallStatus()
        status_record = FunctionCallStatusRecord(
            call_id=entity.call_id,
            requested_at=status.requested_at or datetime.now(UTC),
            responded_at=status.responded_at,
            approved=status.approved,
            comment=status.comment,
            reject_option_name=status.reject_option_name,
            slack_message_ts=status.slack_message_ts,
        )
        return record, status_record

    def _to_entity(self, record: FunctionCallRecord) -> FunctionCall:
        channel = from_json(record.channel_json)
        reject_options = from_json(record.reject_options_json)
        spec = FunctionCallSpec(
            fn=record.fn,
            kwargs=from_json(record.kwargs_json),
            channel=ContactChannel.model_validate(channel) if channel is not None else None,
            reject_options=(
                [ResponseOption.model_validate(item) for item in reject_options]
                if reject_options is not None
                else None
            ),
            state=from_json(record.state_json),
        )
        status = None
        if record.status is not None:
            status = FunctionCallStatus(
                requested_at=ensure_utc(record.status.requested_at),
                responded_at=ensure_utc(record.status.responded_at),
                approved=record.status.approved,
                comment=record.status.comment,
                reject_option_name=record.status.reject_option_name,
                slack_message_ts=record.status.slack_message_ts,
            )
        return FunctionCall(run_id=record.run_id, call_id=record.call_id, spec=spec, status=status)

    def set_message_ts(self, call_id: str, ts: str) -> bool:
        """Store the Slack message handle once; later calls are ignored."""

        with self._store.session_scope() as session:
            stmt = (
                update(FunctionCallStatusRecord)
                .where(
                    FunctionCallStatusRecord.call_id == call_id,
                    FunctionCallStatusRecord.slack_message_ts.is_(None),
                )
                .values(slack_message_ts=ts)
            )
            return session.execute(stmt).rowcount == 1
