"""Decoding and dispatch of Slack button clicks.

Every button we post carries a value of the form ``action:call_id`` or
``action:call_id:option_name``. Option names may themselves contain colons,
so only the first two separators are significant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping

import structlog

from approval_broker.errors import ApiError
from approval_broker.schemas import FunctionCallStatusPatch, HumanContactStatusPatch

if TYPE_CHECKING:  # pragma: no cover
    from approval_broker.services import FunctionCallService, HumanContactService

BLOCK_ACTIONS = "block_actions"
_SEPARATOR = ":"


class ActionType(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    REJECT = "reject"
    RESPOND = "respond"


_NEEDS_OPTION = {ActionType.REJECT, ActionType.RESPOND}


class UnknownActionError(ValueError):
    """Raised when a value names an action we do not handle."""


@dataclass(frozen=True)
class ActionCommand:
    action: ActionType
    call_id: str
    option_name: str | None = None

    def encode(self) -> str:
        parts = [self.action.value, self.call_id]
        if self.option_name is not None:
            parts.append(self.option_name)
        return _SEPARATOR.join(parts)


def parse_action_value(raw_value: str | None) -> ActionCommand:
    """Parse a button value into a command; raises ValueError when malformed."""

    parts = (raw_value or "").split(_SEPARATOR, 2)
    if len(parts) < 2:
        raise ValueError("Action value must look like 'action:call_id[:option]'.")

    action_name, call_id = parts[0], parts[1]
    option_name = parts[2] if len(parts) == 3 else None
    if not call_id:
        raise ValueError("Action value is missing a call id.")

    try:
        action = ActionType(action_name)
    except ValueError as exc:
        raise UnknownActionError(f"Unknown action type '{action_name}'.") from exc

    if action in _NEEDS_OPTION and not option_name:
        raise ValueError(f"Action '{action.value}' requires an option name.")
    if action not in _NEEDS_OPTION:
        option_name = None

    return ActionCommand(action=action, call_id=call_id, option_name=option_name)


def user_label(user: Mapping[str, Any] | None) -> str:
    user = user or {}
    return user.get("username") or user.get("name") or user.get("id") or "unknown"


class InteractionHandler:
    """Turn a verified interaction payload into a service ``respond`` call."""

    def __init__(
        self,
        *,
        function_calls: "FunctionCallService",
        human_contacts: "HumanContactService",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._function_calls = function_calls
        self._human_contacts = human_contacts
        self._clock = clock or (lambda: datetime.now(UTC))
        self._dispatch: dict[ActionType, Callable[[ActionCommand, str], None]] = {
            ActionType.APPROVE: self._approve,
            ActionType.DENY: self._deny,
            ActionType.REJECT: self._reject,
            ActionType.RESPOND: self._respond,
        }

    def handle(self, payload: Mapping[str, Any]) -> None:
        """Process one payload. Never raises: the webhook caller was already answered."""

        log = structlog.get_logger()
        payload_type = payload.get("type")
        actions = payload.get("actions")
        action = actions[0] if isinstance(actions, list) and actions else None
        user = payload.get("user")
        if (
            payload_type != BLOCK_ACTIONS
            or not isinstance(action, Mapping)
            or (user is not None and not isinstance(user, Mapping))
        ):
            log.warning("slack_interaction_dropped", reason="unsupported_payload", payload_type=payload_type)
            return

        raw_value = action.get("value")
        if not isinstance(raw_value, str):
            log.warning("slack_interaction_dropped", reason="invalid_value", value=raw_value)
            return
        try:
            command = parse_action_value(raw_value)
        except UnknownActionError:
            log.warning("slack_interaction_dropped", reason="unknown_action", value=raw_value)
            return
        except ValueError:
            log.warning("slack_interaction_dropped", reason="invalid_value", value=raw_value)
            return

        user = user_label(user)
        log = log.bind(call_id=command.call_id, action=command.action.value, slack_user=user)
        log.info("slack_interaction_received", action_id=action.get("action_id"))

        try:
            self._dispatch[command.action](command, user)
        except ApiError as exc:
            log.warning("slack_interaction_rejected", code=exc.code, error=exc.message)
            return
        except Exception:
            log.exception("slack_interaction_failed")
            return

        log.info("slack_interaction_applied")

    def _approve(self, command: ActionCommand, user: str) -> None:
        self._function_calls.respond(
            command.call_id,
            FunctionCallStatusPatch(
                responded_at=self._clock(),
                approved=True,
                comment=f"Approved by @{user} via Slack",
            ),
        )

    def _deny(self, command: ActionCommand, user: str) -> None:
        self._function_calls.respond(
            command.call_id,
            FunctionCallStatusPatch(
                responded_at=self._clock(),
                approved=False,
                comment=f"Denied by @{user} via Slack",
            ),
        )

    def _reject(self, command: ActionCommand, user: str) -> None:
        self._function_calls.respond(
            command.call_id,
            FunctionCallStatusPatch(
                responded_at=self._clock(),
                approved=False,
                reject_option_name=command.option_name,
                comment=f"Rejected ({command.option_name}) by @{user} via Slack",
            ),
        )

    def _respond(self, command: ActionCommand, user: str) -> None:
        contact = self._human_contacts.get(command.call_id)
        option = contact.spec.find_option(command.option_name or "")
        label = option.label if option is not None else command.option_name
        self._human_contacts.respond(
            command.call_id,
            HumanContactStatusPatch(
                responded_at=self._clock(),
                response=f"{label} (by @{user})",
                response_option_name=command.option_name,
            ),
        )
