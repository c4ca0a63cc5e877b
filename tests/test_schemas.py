"""Tests for request and status models."""

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_broker.schemas import (  # noqa: E402
    ContactChannel,
    EmailContactChannel,
    FunctionCall,
    FunctionCallResponse,
    FunctionCallStatus,
    FunctionCallStatusPatch,
    HumanContactResponse,
    dump,
    ensure_utc,
)


def test_ensure_utc_normalises_naive_and_offset_values():
    naive = datetime(2026, 1, 1, 12, 0)
    shifted = datetime(2026, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc(shifted).tzinfo is UTC
    assert ensure_utc(shifted).hour == 12
    assert ensure_utc(None) is None


def test_patch_only_reports_fields_that_were_set():
    patch = FunctionCallStatusPatch.model_validate({"approved": True, "comment": None})

    assert patch.update_values() == {"approved": True, "comment": None}


def test_respond_bodies_require_a_decision():
    with pytest.raises(ValidationError):
        FunctionCallResponse.model_validate({"comment": "hmm"})
    with pytest.raises(ValidationError):
        HumanContactResponse.model_validate({})

    assert FunctionCallResponse.model_validate({"approved": False}).update_values() == {"approved": False}


def test_function_call_requires_identifiers_and_spec():
    with pytest.raises(ValidationError) as err:
        FunctionCall.model_validate({"run_id": "", "call_id": "c1"})

    locations = {error["loc"][0] for error in err.value.errors()}
    assert locations == {"run_id", "spec"}


def test_email_channel_checks_address():
    with pytest.raises(ValidationError):
        EmailContactChannel(address="not-an-address")

    channel = ContactChannel(email=EmailContactChannel(address=" ops@example.com "))
    assert channel.email.address == "ops@example.com"
    assert channel.configured_kinds() == ["email"]


def test_dump_omits_absent_fields():
    status = FunctionCallStatus(requested_at=datetime(2026, 1, 1, tzinfo=UTC))

    assert dump(status) == {"requested_at": "2026-01-01T00:00:00Z"}
    assert status.is_resolved is False
