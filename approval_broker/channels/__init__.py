"""Outbound notifications to the human on the other end of a request."""

from __future__ import annotations

from typing import Callable

import structlog
from slack_sdk.errors import SlackApiError

from approval_broker.config import AppSettings
from approval_broker.schemas import ContactChannel, Escalation, FunctionCall, HumanContact
from approval_broker.slack_client import SlackClient

from .messages import (
    MAX_ACTION_ELEMENTS,
    approval_buttons,
    build_approval_decision_update,
    build_approval_message,
    build_contact_message,
    build_escalation_message,
)

SlackClientFactory = Callable[[str], SlackClient]

_UNWIRED_KINDS = ("email", "sms", "whatsapp")


def _slack_error(exc: SlackApiError) -> tuple[str, int | None]:
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc), None
    return response.get("error") or str(exc), getattr(response, "status_code", None)


class ChannelService:
    """Deliver approval requests, questions, and escalations.

    Only Slack is wired up; the other channel kinds are accepted and logged.
    Send operations raise on transport failure so callers can decide what a
    failed page means; updates and escalations are best effort.
    """

    def __init__(self, settings: AppSettings, *, client_factory: SlackClientFactory | None = None) -> None:
        self._default_token = settings.bot_token
        self._timeout = settings.notify_timeout_seconds
        self._client_factory = client_factory or self._build_client

    def _build_client(self, token: str) -> SlackClient:
        return SlackClient(token=token, timeout=self._timeout)

    def _slack_client(self, channel: ContactChannel | None, log) -> SlackClient | None:
        slack = channel.slack if channel else None
        if slack is None:
            return None
        token = slack.bot_token or self._default_token
        if not token:
            log.warning("slack_token_missing", destination=slack.channel_or_user_id)
            return None
        return self._client_factory(token)

    def _log_unwired(self, channel: ContactChannel | None, log, operation: str) -> None:
        if channel is None:
            return
        for kind in _UNWIRED_KINDS:
            if getattr(channel, kind) is not None:
                log.info("channel_not_supported", channel_kind=kind, operation=operation)

    def send_approval_request(self, call: FunctionCall) -> str | None:
        """Post the approval prompt; returns the Slack message ``ts`` if one was posted."""

        log = structlog.get_logger().bind(call_id=call.call_id, operation="send_approval_request")
        channel = call.spec.channel
        if channel is None:
            log.info("notification_skipped", reason="no_channel")
            return None
        self._log_unwired(channel, log, "send_approval_request")

        client = self._slack_client(channel, log)
        if client is None:
            return None

        _, dropped = approval_buttons(call)
        if dropped:
            log.warning("reject_options_truncated", dropped=dropped, limit=MAX_ACTION_ELEMENTS)

        payload = build_approval_message(call)
        response = client.post_message(
            channel=channel.slack.channel_or_user_id,
            text=payload["text"],
            blocks=payload["blocks"],
            thread_ts=channel.slack.thread_ts,
        )
        ts = response.get("ts")
        log.info("approval_request_sent", destination=channel.slack.channel_or_user_id, ts=ts)
        return ts

    def send_human_contact_request(self, contact: HumanContact) -> str | None:
        log = structlog.get_logger().bind(call_id=contact.call_id, operation="send_human_contact_request")
        channel = contact.spec.channel
        if channel is None:
            log.info("notification_skipped", reason="no_channel")
            return None
        self._log_unwired(channel, log, "send_human_contact_request")

        client = self._slack_client(channel, log)
        if client is None:
            return None

        payload = build_contact_message(contact)
        response = client.post_message(
            channel=channel.slack.channel_or_user_id,
            text=payload["text"],
            blocks=payload["blocks"],
            thread_ts=channel.slack.thread_ts,
        )
        ts = response.get("ts")
        log.info("human_contact_request_sent", destination=channel.slack.channel_or_user_id, ts=ts)
        return ts

    def update_approval_message(self, call: FunctionCall, *, approved: bool, comment: str | None) -> None:
        """Edit the posted approval prompt in place; failures are only logged."""

        log = structlog.get_logger().bind(call_id=call.call_id, operation="update_approval_message")
        ts = call.status.slack_message_ts if call.status else None
        if not ts:
            log.info("message_update_skipped", reason="no_message_handle")
            return

        client = self._slack_client(call.spec.channel, log)
        if client is None:
            return

        payload = build_approval_decision_update(call, approved=approved, comment=comment)
        try:
            client.update_message(
                channel=call.spec.channel.slack.channel_or_user_id,
                ts=ts,
                text=payload["text"],
                blocks=payload["blocks"],
            )
        except SlackApiError as exc:
            error_code, status_code = _slack_error(exc)
            log.warning("message_update_failed", error=error_code, status_code=status_code)
            return
        except Exception as exc:
            log.warning("message_update_failed", error=str(exc))
            return
        log.info("message_updated", ts=ts)

    def send_escalation(
        self,
        entity: FunctionCall | HumanContact,
        escalation: Escalation,
        *,
        thread_ts: str | None = None,
    ) -> None:
        """Forward an escalation to the escalation's channel, or the request's own."""

        log = structlog.get_logger().bind(call_id=entity.call_id, operation="send_escalation")
        channel = escalation.channel or entity.spec.channel
        if channel is None:
            log.info("notification_skipped", reason="no_channel")
            return
        self._log_unwired(channel, log, "send_escalation")
        if escalation.additional_recipients:
            log.info(
                "channel_not_supported",
                channel_kind="email",
                operation="send_escalation",
                recipients=len(escalation.additional_recipients),
            )

        client = self._slack_client(channel, log)
        if client is None:
            return

        payload = build_escalation_message(entity.call_id, escalation)
        try:
            client.post_message(
                channel=channel.slack.channel_or_user_id,
                text=payload["text"],
                blocks=payload["blocks"],
                thread_ts=thread_ts or channel.slack.thread_ts,
            )
        except SlackApiError as exc:
            error_code, status_code = _slack_error(exc)
            log.warning("escalation_failed", error=error_code, status_code=status_code)
            return
        except Exception as exc:
            log.warning("escalation_failed", error=str(exc))
            return
        log.info("escalation_sent", destination=channel.slack.channel_or_user_id)


__all__ = ["ChannelService", "SlackClientFactory"]
