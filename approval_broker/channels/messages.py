"""Block Kit message builders for approval and contact requests."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from approval_broker.interactions import ActionCommand, ActionType
from approval_broker.schemas import Escalation, FunctionCall, HumanContact

APPROVE_ACTION_ID = "function_call_approve"
DENY_ACTION_ID = "function_call_deny"
REJECT_ACTION_PREFIX = "function_call_reject"
RESPOND_ACTION_PREFIX = "human_contact_respond"

# Slack rejects actions blocks with more than 25 elements.
MAX_ACTION_ELEMENTS = 25
_MAX_BUTTON_LABEL = 75
_MAX_SECTION_TEXT = 2900

_DECISION_EMOJI = {
    True: ":white_check_mark:",
    False: ":no_entry_sign:",
}


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _button(*, label: str, action_id: str, value: str, style: str | None = None) -> Dict[str, Any]:
    button: Dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": _truncate(label, _MAX_BUTTON_LABEL), "emoji": True},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def _format_kwargs(kwargs: Dict[str, Any]) -> str:
    if not kwargs:
        return "_No arguments_"
    pretty = json.dumps(kwargs, indent=2, sort_keys=True, default=str)
    return f"```{_truncate(pretty, _MAX_SECTION_TEXT)}```"


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def approval_buttons(call: FunctionCall) -> tuple[List[Dict[str, Any]], int]:
    """Return the approve/deny/reject buttons and how many options were dropped."""

    call_id = call.call_id
    elements: List[Dict[str, Any]] = [
        _button(
            label="Approve",
            action_id=APPROVE_ACTION_ID,
            value=ActionCommand(ActionType.APPROVE, call_id).encode(),
            style="primary",
        ),
        _button(
            label="Deny",
            action_id=DENY_ACTION_ID,
            value=ActionCommand(ActionType.DENY, call_id).encode(),
            style="danger",
        ),
    ]
    options = call.spec.reject_options or []
    room = MAX_ACTION_ELEMENTS - len(elements)
    for index, option in enumerate(options[:room]):
        elements.append(
            _button(
                label=option.label,
                action_id=f"{REJECT_ACTION_PREFIX}_{index}",
                value=ActionCommand(ActionType.REJECT, call_id, option.name).encode(),
            )
        )
    return elements, max(len(options) - room, 0)


def build_approval_message(call: FunctionCall) -> Dict[str, Any]:
    """Build the Slack message asking a human to approve *call*."""

    elements, _ = approval_buttons(call)
    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": _truncate(f"Approval requested: {call.spec.fn}", 150), "emoji": True},
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": _format_kwargs(call.spec.kwargs)}},
        _context(f"Call ID: `{call.call_id}` - Run ID: `{call.run_id}`"),
        {"type": "actions", "block_id": "function_call_decision", "elements": elements},
    ]
    return {
        "text": f"Approval requested for {call.spec.fn}.",
        "blocks": blocks,
    }


def build_approval_decision_update(call: FunctionCall, *, approved: bool, comment: str | None) -> Dict[str, Any]:
    """Return the approval message with its buttons replaced by the outcome."""

    base = build_approval_message(call)
    blocks = list(base["blocks"][:-1])  # drop the action buttons

    label = "Approved" if approved else "Denied"
    line = f"{_DECISION_EMOJI[approved]} {label}"
    if comment:
        line = f"{line}: {comment}"
    blocks.append(_context(line))

    return {
        "text": f"{call.spec.fn} {label.lower()}.",
        "blocks": blocks,
    }


def build_contact_message(contact: HumanContact) -> Dict[str, Any]:
    """Build the Slack message asking a human a question."""

    spec = contact.spec
    subject = spec.subject or "Question from your agent"
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": _truncate(subject, 150), "emoji": True}},
        {"type": "section", "text": {"type": "mrkdwn", "text": _truncate(spec.msg or " ", _MAX_SECTION_TEXT)}},
        _context(f"Call ID: `{contact.call_id}` - Run ID: `{contact.run_id}`"),
    ]
    options = (spec.response_options or [])[:MAX_ACTION_ELEMENTS]
    if options:
        blocks.append(
            {
                "type": "actions",
                "block_id": "human_contact_options",
                "elements": [
                    _button(
                        label=option.label,
                        action_id=f"{RESPOND_ACTION_PREFIX}_{index}",
                        value=ActionCommand(ActionType.RESPOND, contact.call_id, option.name).encode(),
                    )
                    for index, option in enumerate(options)
                ],
            }
        )
    return {"text": subject, "blocks": blocks}


def build_escalation_message(call_id: str, escalation: Escalation) -> Dict[str, Any]:
    text = f":rotating_light: Escalation for `{call_id}`: {escalation.escalation_msg}"
    return {
        "text": f"Escalation for {call_id}: {escalation.escalation_msg}",
        "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": _truncate(text, _MAX_SECTION_TEXT)}}],
    }
