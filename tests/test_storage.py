"""Tests for the SQLAlchemy-backed repositories."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
import sys

import pytest
from sqlalchemy.exc import IntegrityError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_broker.auth import hash_api_key  # noqa: E402
from approval_broker.db import Store  # noqa: E402
from approval_broker.schemas import (  # noqa: E402
    ContactChannel,
    Escalation,
    FunctionCall,
    FunctionCallSpec,
    FunctionCallStatus,
    HumanContact,
    HumanContactSpec,
    ResponseOption,
    SlackContactChannel,
)
from approval_broker.storage import (  # noqa: E402
    FUNCTION_CALL_KIND,
    HUMAN_CONTACT_KIND,
    ApiKeyRepository,
    EscalationRepository,
    FunctionCallRepository,
    HumanContactRepository,
)
from approval_broker.storage.base import StatusRepository  # noqa: E402

REQUESTED_AT = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


@pytest.fixture
def store(tmp_path):
    store = Store(f"sqlite:///{tmp_path / 'storage.db'}")
    store.create_all()
    yield store
    store.dispose()


def _function_call(call_id: str = "call-1") -> FunctionCall:
    return FunctionCall(
        run_id="run-1",
        call_id=call_id,
        spec=FunctionCallSpec(
            fn="send_email",
            kwargs={"to": "a@example.com", "body": "hi", "attempt": 2},
            channel=ContactChannel(slack=SlackContactChannel(channel_or_user_id="C123", bot_token="xoxb-1")),
            reject_options=[ResponseOption(name="too_risky", title="Too risky")],
            state={"step": 3},
        ),
        status=FunctionCallStatus(requested_at=REQUESTED_AT),
    )


def test_function_call_round_trips(store):
    repository = FunctionCallRepository(store)

    created = repository.create(_function_call())
    loaded = repository.get("call-1")

    assert loaded == created
    assert loaded.spec.kwargs == {"to": "a@example.com", "body": "hi", "attempt": 2}
    assert list(loaded.spec.kwargs) == ["to", "body", "attempt"]
    assert loaded.spec.channel.slack.bot_token == "xoxb-1"
    assert loaded.spec.reject_options[0].label == "Too risky"
    assert loaded.spec.state == {"step": 3}
    assert loaded.status.requested_at == REQUESTED_AT
    assert loaded.status.responded_at is None
    assert loaded.status.is_resolved is False


def test_missing_request_returns_none(store):
    assert FunctionCallRepository(store).get("nope") is None
    assert FunctionCallRepository(store).exists("nope") is False
    assert HumanContactRepository(store).get("nope") is None


def test_duplicate_call_id_is_rejected_by_the_store(store):
    repository = FunctionCallRepository(store)
    repository.create(_function_call())

    with pytest.raises(IntegrityError):
        repository.create(_function_call())


def test_resolve_only_succeeds_once(store):
    repository = FunctionCallRepository(store)
    repository.create(_function_call())
    first_time = REQUESTED_AT + timedelta(minutes=1)

    assert repository.resolve("call-1", {"responded_at": first_time, "approved": True, "comment": "ok"})
    assert not repository.resolve(
        "call-1", {"responded_at": first_time + timedelta(minutes=1), "approved": False, "comment": "late"}
    )

    status = repository.get("call-1").status
    assert status.approved is True
    assert status.comment == "ok"
    assert status.responded_at == first_time


def test_resolve_writes_only_the_given_fields(store):
    repository = FunctionCallRepository(store)
    entity = _function_call()
    entity.status.comment = "pre-filled"
    repository.create(entity)

    repository.resolve("call-1", {"responded_at": REQUESTED_AT, "approved": False})

    status = repository.get("call-1").status
    assert status.approved is False
    assert status.comment == "pre-filled"
    assert status.reject_option_name is None


def test_resolve_requires_a_timestamp(store):
    repository = FunctionCallRepository(store)
    repository.create(_function_call())

    with pytest.raises(ValueError):
        repository.resolve("call-1", {"approved": True})


def test_resolve_unknown_request_reports_no_change(store):
    assert FunctionCallRepository(store).resolve("ghost", {"responded_at": REQUESTED_AT}) is False


def test_message_ts_is_write_once(store):
    repository = FunctionCallRepository(store)
    repository.create(_function_call())

    assert repository.set_message_ts("call-1", "111.222") is True
    assert repository.set_message_ts("call-1", "333.444") is False
    assert repository.get("call-1").status.slack_message_ts == "111.222"


def test_human_contact_round_trips(store):
    repository = HumanContactRepository(store)
    contact = HumanContact(
        run_id="run-9",
        call_id="contact-1",
        spec=HumanContactSpec(
            msg="Which region?",
            subject="Deploy",
            response_options=[ResponseOption(name="eu"), ResponseOption(name="us", title="United States")],
        ),
    )

    repository.create(contact)
    loaded = repository.get("contact-1")

    assert loaded.spec.msg == "Which region?"
    assert loaded.spec.subject == "Deploy"
    assert loaded.spec.find_option("us").label == "United States"
    assert loaded.spec.channel is None
    assert loaded.status.requested_at is not None

    assert repository.resolve("contact-1", {"responded_at": REQUESTED_AT, "response": "eu"})
    assert repository.get("contact-1").status.response == "eu"


def test_escalations_are_listed_per_request_in_order(store):
    repository = EscalationRepository(store)
    repository.append(kind=FUNCTION_CALL_KIND, call_id="call-1", escalation=Escalation(escalation_msg="first"))
    repository.append(
        kind=FUNCTION_CALL_KIND,
        call_id="call-1",
        escalation=Escalation(
            escalation_msg="second",
            channel=ContactChannel(slack=SlackContactChannel(channel_or_user_id="C999")),
        ),
    )
    repository.append(kind=HUMAN_CONTACT_KIND, call_id="call-1", escalation=Escalation(escalation_msg="other kind"))

    entries = repository.list_for(kind=FUNCTION_CALL_KIND, call_id="call-1")

    assert [entry.escalation_msg for entry in entries] == ["first", "second"]
    assert entries[1].channel.slack.channel_or_user_id == "C999"
    assert all(entry.created_at.tzinfo is not None for entry in entries)
    assert repository.list_for(kind=FUNCTION_CALL_KIND, call_id="call-2") == []


def test_api_key_lifecycle(store):
    repository = ApiKeyRepository(store)

    assert repository.ensure("sk-test-key", name="default") is True
    assert repository.ensure("sk-test-key", name="default") is False

    stored = repository.get_by_prefix("sk-test-")
    assert stored.key_hash == hash_api_key("sk-test-key")
    assert stored.last_used_at is None

    assert repository.authenticate("sk-test-key") is True
    assert repository.get_by_prefix("sk-test-").last_used_at is not None
    assert repository.authenticate("sk-wrong") is False

    assert repository.deactivate("sk-test-") == 1
    assert repository.authenticate("sk-test-key") is False
    assert repository.deactivate("sk-test-") == 0


def test_status_repository_requires_conversions(store):
    with pytest.raises(TypeError):
        StatusRepository(store)
