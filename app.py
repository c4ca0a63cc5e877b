"""Application entry point for the approval broker HTTP API."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import parse_qs
from uuid import uuid4

from flask import Blueprint, Flask, g, jsonify, request
from pydantic import ValidationError
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars
from werkzeug.exceptions import HTTPException

from approval_broker.auth import extract_bearer_token
from approval_broker.background import run_async
from approval_broker.channels import ChannelService
from approval_broker.config import AppSettings, get_settings
from approval_broker.db import Store
from approval_broker.errors import ApiError, InvalidApiKey, Unauthorized, ValidationFailed
from approval_broker.interactions import InteractionHandler
from approval_broker.logging_config import configure_logging
from approval_broker.schemas import (
    Escalation,
    FunctionCall,
    FunctionCallResponse,
    HumanContact,
    HumanContactResponse,
    dump,
)
from approval_broker.security import check_request_headers
from approval_broker.services import FunctionCallService, HumanContactService, build_services
from approval_broker.storage import ApiKeyRepository

API_PREFIX = "/humanlayer/v1"
EXTENSION_KEY = "approval_broker"


@dataclass
class BrokerContext:
    settings: AppSettings
    store: Store
    api_keys: ApiKeyRepository
    function_calls: FunctionCallService
    human_contacts: HumanContactService
    interactions: InteractionHandler


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def _register_error_handlers(flask_app: Flask) -> None:
    """Translate domain errors verbatim and hide everything else behind a 500."""

    @flask_app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        structlog.get_logger().info("api_error", code=error.code, status=error.status_code, error=error.message)
        return jsonify(error.to_dict()), error.status_code

    @flask_app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        details = json.loads(error.json(include_url=False))
        failure = ValidationFailed("Request validation failed", details=details)
        structlog.get_logger().info("api_error", code=failure.code, status=failure.status_code, errors=len(details))
        return jsonify(failure.to_dict()), failure.status_code

    @flask_app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        code = (error.name or "error").upper().replace(" ", "_")
        body = {"error": {"code": code, "message": error.description or error.name}}
        return jsonify(body), error.code or 500

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = g.get("trace_id") or str(uuid4())
        structlog.get_logger().error(
            "unhandled_error",
            trace_id=trace_id,
            error=str(error),
            exc_info=(type(error), error, error.__traceback__),
        )
        body = {
            "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
            "trace_id": trace_id,
        }
        return jsonify(body), 500


def _register_request_logging(flask_app: Flask) -> None:
    @flask_app.before_request
    def bind_trace():
        g.trace_id = str(uuid4())
        g.started_at = time.perf_counter()
        bind_contextvars(trace_id=g.trace_id)

    @flask_app.after_request
    def log_request(response):
        started = g.get("started_at")
        duration_ms = round((time.perf_counter() - started) * 1000, 2) if started is not None else None
        structlog.get_logger().info(
            "request_completed",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        return response

    @flask_app.teardown_request
    def unbind_trace(_exc):
        unbind_contextvars("trace_id")


def _build_api_blueprint(context: BrokerContext) -> Blueprint:
    api = Blueprint("humanlayer_v1", __name__, url_prefix=API_PREFIX)
    function_calls = context.function_calls
    human_contacts = context.human_contacts

    @api.before_request
    def authenticate():
        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            raise Unauthorized("Missing or invalid Authorization header")
        if not context.api_keys.authenticate(token):
            raise InvalidApiKey("Invalid API key")

    @api.route("/function_calls", methods=["POST"])
    def create_function_call():
        call = FunctionCall.model_validate(_json_body())
        return jsonify(dump(function_calls.create(call))), 201

    @api.route("/function_calls/<call_id>", methods=["GET"])
    @api.route("/agent/function_calls/<call_id>", methods=["GET"])
    def get_function_call(call_id: str):
        return jsonify(dump(function_calls.get(call_id)))

    @api.route("/agent/function_calls/<call_id>/respond", methods=["POST"])
    @api.route("/function_calls/<call_id>/respond", methods=["POST"])
    def respond_function_call(call_id: str):
        patch = FunctionCallResponse.model_validate(_json_body())
        return jsonify(dump(function_calls.respond(call_id, patch)))

    @api.route("/agent/function_calls/<call_id>/escalate_email", methods=["POST"])
    @api.route("/function_calls/<call_id>/escalate_email", methods=["POST"])
    def escalate_function_call(call_id: str):
        escalation = Escalation.model_validate(_json_body())
        return jsonify(dump(function_calls.escalate_email(call_id, escalation)))

    @api.route("/agent/function_calls/<call_id>/escalations", methods=["GET"])
    def list_function_call_escalations(call_id: str):
        return jsonify([dump(entry) for entry in function_calls.list_escalations(call_id)])

    @api.route("/contact_requests", methods=["POST"])
    def create_contact_request():
        contact = HumanContact.model_validate(_json_body())
        return jsonify(dump(human_contacts.create(contact))), 201

    @api.route("/contact_requests/<call_id>", methods=["GET"])
    @api.route("/agent/human_contacts/<call_id>", methods=["GET"])
    def get_contact_request(call_id: str):
        return jsonify(dump(human_contacts.get(call_id)))

    @api.route("/agent/human_contacts/<call_id>/respond", methods=["POST"])
    @api.route("/contact_requests/<call_id>/respond", methods=["POST"])
    def respond_contact_request(call_id: str):
        patch = HumanContactResponse.model_validate(_json_body())
        return jsonify(dump(human_contacts.respond(call_id, patch)))

    @api.route("/agent/human_contacts/<call_id>/escalate_email", methods=["POST"])
    @api.route("/contact_requests/<call_id>/escalate_email", methods=["POST"])
    def escalate_contact_request(call_id: str):
        escalation = Escalation.model_validate(_json_body())
        return jsonify(dump(human_contacts.escalate_email(call_id, escalation)))

    @api.route("/agent/human_contacts/<call_id>/escalations", methods=["GET"])
    def list_contact_escalations(call_id: str):
        return jsonify([dump(entry) for entry in human_contacts.list_escalations(call_id)])

    return api


def _register_slack_routes(flask_app: Flask, context: BrokerContext) -> None:
    @flask_app.route("/slack/interactions", methods=["POST"])
    def slack_interactions():
        log = structlog.get_logger()
        raw_body = request.get_data(as_text=True)
        check = check_request_headers(
            signing_secret=context.settings.signing_secret,
            headers=request.headers,
            body=raw_body,
        )
        if check.reason == "skipped":
            log.warning("slack_signature_verification_skipped")
        if not check.ok:
            log.warning("slack_signature_rejected", reason=check.reason)
            return jsonify({"error": "invalid_signature"}), 401

        payload_raw = (parse_qs(raw_body).get("payload") or [None])[0]
        if not payload_raw:
            return jsonify({"error": "no_payload"}), 400
        try:
            payload = json.loads(payload_raw)
        except json.JSONDecodeError:
            return jsonify({"error": "invalid_payload"}), 400
        if not isinstance(payload, dict):
            return jsonify({"error": "invalid_payload"}), 400

        # Slack expects an answer within three seconds; the work happens afterwards.
        run_async(context.interactions.handle, payload)
        return jsonify({"ok": True}), 200


def create_app(
    settings: AppSettings | None = None,
    *,
    store: Store | None = None,
    channels: ChannelService | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    log = structlog.get_logger()

    if not settings.bot_token:
        log.warning("slack_bot_token_missing", detail="Slack notifications need a per-request bot_token")
    if not settings.signing_secret:
        log.warning("slack_signing_secret_missing", detail="Interaction signatures will not be verified")

    store = store or Store(settings.database_url)
    store.create_all()

    api_keys = ApiKeyRepository(store)
    if settings.default_api_key and api_keys.ensure(settings.default_api_key, name="default"):
        log.info("default_api_key_seeded")

    channels = channels or ChannelService(settings)
    function_calls, human_contacts = build_services(store, channels)
    context = BrokerContext(
        settings=settings,
        store=store,
        api_keys=api_keys,
        function_calls=function_calls,
        human_contacts=human_contacts,
        interactions=InteractionHandler(function_calls=function_calls, human_contacts=human_contacts),
    )

    flask_app = Flask(__name__)
    # Agents may rely on the order of kwargs they sent.
    flask_app.json.sort_keys = False
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.extensions[EXTENSION_KEY] = context

    _register_error_handlers(flask_app)
    _register_request_logging(flask_app)
    flask_app.register_blueprint(_build_api_blueprint(context))
    _register_slack_routes(flask_app, context)

    @flask_app.route("/health", methods=["GET"])
    def health():
        return jsonify(
            {
                "status": "ok",
                "version": flask_app.config.get("APP_VERSION", "unknown"),
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        report: dict[str, object] = {"ok": True}
        report["version"] = flask_app.config.get("APP_VERSION", "unknown")
        report["config"] = "valid"
        report["slack"] = "configured" if settings.bot_token else "unconfigured"
        try:
            context.store.ping()
            report["db"] = "up"
        except Exception as exc:
            log.warning("healthcheck_db_down", error=str(exc))
            report["db"] = "down"
            report["ok"] = False
        status = 200 if report["ok"] else 503
        return jsonify(report), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    app_settings = get_settings()
    application = create_app(app_settings)
    application.run(host=app_settings.host, port=app_settings.port)
