"""Request lifecycle services: create, read, resolve once, escalate."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Callable, Generic, List, TypeVar

import structlog

from approval_broker.background import run_async
from approval_broker.channels import ChannelService
from approval_broker.errors import Conflict, NotFound
from approval_broker.schemas import (
    Escalation,
    EscalationEntry,
    FunctionCall,
    FunctionCallStatus,
    FunctionCallStatusPatch,
    HumanContact,
    HumanContactStatus,
    HumanContactStatusPatch,
    StatusPatch,
)
from approval_broker.storage import (
    FUNCTION_CALL_KIND,
    HUMAN_CONTACT_KIND,
    EscalationRepository,
    FunctionCallRepository,
    HumanContactRepository,
)
from approval_broker.storage.base import StatusRepository

EntityT = TypeVar("EntityT", FunctionCall, HumanContact)
PatchT = TypeVar("PatchT", bound=StatusPatch)


class RequestService(ABC, Generic[EntityT, PatchT]):
    """State machine shared by function calls and human contacts.

    A request is unresolved until ``responded_at`` is written, and it can be
    resolved exactly once. The store's conditional update decides the winner
    when two responses race.
    """

    kind: str
    label: str
    status_model: Any
    conflict_code: str
    conflict_message: str

    def __init__(
        self,
        repository: StatusRepository[EntityT],
        channels: ChannelService,
        escalations: EscalationRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._channels = channels
        self._escalations = escalations
        self._clock = clock or (lambda: datetime.now(UTC))

    def _log(self, call_id: str):
        return structlog.get_logger().bind(call_id=call_id, kind=self.kind)

    def _with_initial_status(self, entity: EntityT) -> EntityT:
        status = entity.status
        if status is None:
            status = self.status_model(requested_at=self._clock())
        elif status.requested_at is None:
            status = status.model_copy(update={"requested_at": self._clock()})
        return entity.model_copy(update={"status": status})

    def create(self, entity: EntityT) -> EntityT:
        """Persist *entity*, then page a human in the background if a channel is set.

        A duplicate ``call_id`` raises the store's integrity error unchanged.
        """

        created = self._repository.create(self._with_initial_status(entity))
        self._log(created.call_id).info(f"{self.kind}_created", run_id=created.run_id)

        if created.spec.channel is not None:
            run_async(self._notify_created, created)
        return created

    def get(self, call_id: str) -> EntityT:
        entity = self._repository.get(call_id)
        if entity is None:
            raise NotFound(f"{self.label} {call_id} not found")
        return entity

    def respond(self, call_id: str, patch: PatchT) -> EntityT:
        """Resolve the request with the fields set on *patch*.

        Unset fields keep their stored values. ``responded_at`` defaults to now.
        """

        if not self._repository.exists(call_id):
            raise NotFound(f"{self.label} {call_id} not found")

        values = patch.update_values()
        if values.get("responded_at") is None:
            values["responded_at"] = self._clock()

        log = self._log(call_id)
        if not self._repository.resolve(call_id, values):
            log.info(f"{self.kind}_respond_conflict")
            raise Conflict(self.conflict_message, code=self.conflict_code)

        updated = self.get(call_id)
        log.info(f"{self.kind}_responded", fields=sorted(values))
        self._after_respond(updated)
        return updated

    def escalate_email(self, call_id: str, escalation: Escalation) -> EntityT:
        """Record and forward an escalation; the request's status is untouched."""

        entity = self.get(call_id)
        entry = self._escalations.append(kind=self.kind, call_id=call_id, escalation=escalation)
        self._log(call_id).info(f"{self.kind}_escalated", escalation_id=entry.id)

        thread_ts = self._escalation_thread(entity) if escalation.channel is None else None
        run_async(self._channels.send_escalation, entity, escalation, thread_ts=thread_ts)
        return entity

    def list_escalations(self, call_id: str) -> List[EscalationEntry]:
        if not self._repository.exists(call_id):
            raise NotFound(f"{self.label} {call_id} not found")
        return self._escalations.list_for(kind=self.kind, call_id=call_id)

    def _notify_created(self, entity: EntityT) -> None:
        try:
            self._send(entity)
        except Exception as exc:
            self._log(entity.call_id).error(
                "notification_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    @abstractmethod
    def _send(self, entity: EntityT) -> None:
        """Deliver the initial notification for a freshly created request."""

    def _after_respond(self, entity: EntityT) -> None:
        """Hook for follow-ups once a response has been recorded."""

    def _escalation_thread(self, entity: EntityT) -> str | None:
        return None


class FunctionCallService(RequestService[FunctionCall, FunctionCallStatusPatch]):
    kind = FUNCTION_CALL_KIND
    label = "Function call"
    status_model = FunctionCallStatus
    conflict_code = "ALREADY_DECIDED"
    conflict_message = "Approval decision already made"

    _repository: FunctionCallRepository

    def _send(self, entity: FunctionCall) -> None:
        ts = self._channels.send_approval_request(entity)
        if not ts:
            return
        self._repository.set_message_ts(entity.call_id, ts)

        # A fast responder may have resolved the call before the handle was stored.
        current = self._repository.get(entity.call_id)
        if current is not None and current.status is not None and current.status.is_resolved:
            self._update_message(current)

    def _after_respond(self, entity: FunctionCall) -> None:
        if entity.status is not None and entity.status.slack_message_ts:
            run_async(self._update_message, entity)

    def _update_message(self, entity: FunctionCall) -> None:
        status = entity.status
        self._channels.update_approval_message(entity, approved=bool(status.approved), comment=status.comment)

    def _escalation_thread(self, entity: FunctionCall) -> str | None:
        if entity.status is not None and entity.status.slack_message_ts:
            return entity.status.slack_message_ts
        return None


class HumanContactService(RequestService[HumanContact, HumanContactStatusPatch]):
    kind = HUMAN_CONTACT_KIND
    label = "Human contact"
    status_model = HumanContactStatus
    conflict_code = "ALREADY_RESPONDED"
    conflict_message = "Contact already has a response"

    _repository: HumanContactRepository

    def _send(self, entity: HumanContact) -> None:
        self._channels.send_human_contact_request(entity)


def build_services(
    store,
    channels: ChannelService,
    *,
    clock: Callable[[], datetime] | None = None,
) -> tuple[FunctionCallService, HumanContactService]:
    """Wire both services against one store."""

    escalations = EscalationRepository(store)
    function_calls = FunctionCallService(FunctionCallRepository(store), channels, escalations, clock=clock)
    human_contacts = HumanContactService(HumanContactRepository(store), channels, escalations, clock=clock)
    return function_calls, human_contacts
