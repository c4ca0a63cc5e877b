"""Persistence for human contact requests."""

from __future__ import annotations

from datetime import UTC, datetime

from approval_broker.models import HumanContactRecord, HumanContactStatusRecord
from approval_broker.schemas import (
    ContactChannel,
    HumanContact,
    HumanContactSpec,
    HumanContactStatus,
    ResponseOption,
    ensure_utc,
)

from .base import StatusRepository, from_json, to_json


class HumanContactRepository(StatusRepository[HumanContact]):
    record_model = HumanContactRecord
    status_model = HumanContactStatusRecord

    def _to_records(self, entity: HumanContact) -> tuple[HumanContactRecord, HumanContactStatusRecord]:
        spec = entity.spec
        record = HumanContactRecord(
            call_id=entity.call_id,
            run_id=entity.run_id,
            msg=spec.msg,
            subject=spec.subject,
            channel_json=to_json(spec.channel.model_dump(exclude_none=True)) if spec.channel else None,
            response_options_json=(
                to_json([option.model_dump(exclude_none=True) for option in spec.response_options])
                if spec.response_options is not None
                else None
            ),
            state_json=to_json(spec.state),
        )
        status = entity.status or HumanContactStatus()
        status_record = HumanContactStatusRecord(
            call_id=entity.call_id,
            requested_at=status.requested_at or datetime.now(UTC),
            responded_at=status.responded_at,
            response=status.response,
            response_option_name=status.response_option_name,
        )
        return record, status_record

    def _to_entity(self, record: HumanContactRecord) -> HumanContact:
        channel = from_json(record.channel_json)
        response_options = from_json(record.response_options_json)
        spec = HumanContactSpec(
            msg=record.msg,
            subject=record.subject,
            channel=ContactChannel.model_validate(channel) if channel is not None else None,
            response_options=(
                [ResponseOption.model_validate(item) for item in response_options]
                if response_options is not None
                else None
            ),
            state=from_json(record.state_json),
        )
        status = None
        if record.status is not None:
            status = HumanContactStatus(
                requested_at=ensure_utc(record.status.requested_at),
                responded_at=ensure_utc(record.status.responded_at),
                response=record.status.response,
                response_option_name=record.status.response_option_name,
            )
        return HumanContact(run_id=record.run_id, call_id=record.call_id, spec=spec, status=status)
