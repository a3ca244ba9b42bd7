"""
Flask Application
=================

HTTP surface for credit balances, draft generation and draft saving,
with structured error responses and request-scoped logging.

The authenticated user id is supplied by the upstream auth layer in
the ``X-User-Id`` header.
"""

from __future__ import annotations

from typing import Any, Optional

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from src import __version__
from src.config import get_settings
from src.exceptions import (
    CompletionServiceError,
    DraftGeneratorError,
    InsufficientCreditsError,
    MissingUserError,
    StorageError,
    ValidationError,
)
from src.logging_config import get_logger, set_request_id, set_user_id
from src.models import (
    BalanceResponse,
    CreditHistoryResponse,
    DraftSavedResponse,
    GenerateDraftsResponse,
    GenerateEmailRequest,
    SaveDraftRequest,
)
from src.services import get_credit_ledger, get_generation_orchestrator
from src.services.completion_service import (
    CompletionService,
    MockCompletionService,
    OpenAICompletionService,
    RecipientEnvelope,
)
from src.services.prompt_builder import DRAFT_DELIMITER

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"

PROXY_SYSTEM_INSTRUCTION = (
    "You are an expert sales email generator. "
    "Generate a concise, effective sales email draft."
)


def create_app() -> Flask:
    """
    Application factory for Flask app.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    settings = get_settings()

    app.config["DEBUG"] = settings.debug
    app.json.sort_keys = False

    register_error_handlers(app)
    register_middleware(app)
    register_routes(app)

    logger.info(
        "Application initialized",
        environment=settings.environment.value,
        mock_mode=settings.completion.use_mock_mode
    )

    return app


def _status_for(error: DraftGeneratorError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, MissingUserError):
        return 401
    if isinstance(error, InsufficientCreditsError):
        return 402
    if isinstance(error, CompletionServiceError):
        return 502
    if isinstance(error, StorageError):
        return 503
    return 500


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the application."""

    @app.errorhandler(DraftGeneratorError)
    def handle_generator_error(error: DraftGeneratorError) -> tuple[Response, int]:
        status_code = _status_for(error)
        if status_code < 500:
            logger.info(
                f"Request rejected: {error.message}",
                error_code=error.code.value,
                status_code=status_code
            )
        else:
            logger.error(
                f"Application error: {error.message}",
                error_code=error.code.value,
                context=error.context.to_dict(),
                cause=str(error.cause) if error.cause else None
            )
        return jsonify(error.to_dict()), status_code

    @app.errorhandler(PydanticValidationError)
    def handle_pydantic_validation_error(error: PydanticValidationError) -> tuple[Response, int]:
        logger.info("Request body rejected", errors=error.errors(include_url=False))
        return jsonify({
            "error": True,
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": error.errors(include_url=False)
        }), 400

    @app.errorhandler(400)
    def handle_bad_request(error: Any) -> tuple[Response, int]:
        return jsonify({
            "error": True,
            "code": "BAD_REQUEST",
            "message": str(error.description) if hasattr(error, "description") else "Bad request"
        }), 400

    @app.errorhandler(404)
    def handle_not_found(error: Any) -> tuple[Response, int]:
        return jsonify({
            "error": True,
            "code": "NOT_FOUND",
            "message": "Resource not found"
        }), 404

    @app.errorhandler(500)
    def handle_internal_error(error: Any) -> tuple[Response, int]:
        logger.error("Internal server error", error=str(error), exc_info=True)
        return jsonify({
            "error": True,
            "code": "INTERNAL_ERROR",
            "message": "An internal error occurred"
        }), 500


def register_middleware(app: Flask) -> None:
    """Register middleware for the application."""

    @app.before_request
    def before_request() -> None:
        request_id = request.headers.get("X-Request-ID") or request.headers.get("X-Cloud-Trace-Context")
        set_request_id(request_id)
        set_user_id(request.headers.get(USER_ID_HEADER))

        logger.debug(
            "Request started",
            method=request.method,
            path=request.path
        )

    @app.after_request
    def after_request(response: Response) -> Response:
        logger.debug(
            "Request completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code
        )
        return response


def current_user_id() -> str:
    """
    User id established by the upstream auth layer.

    Raises:
        MissingUserError: If the header is absent or blank.
    """
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise MissingUserError()
    return user_id


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError(message="Request body must be a JSON object", field="body")
    return data


def _proxy_backend(model: Optional[str] = None) -> CompletionService:
    settings = get_settings().completion
    if settings.use_mock_mode:
        return MockCompletionService()
    if model:
        settings = settings.model_copy(update={"model": model})
    return OpenAICompletionService(settings=settings)


def register_routes(app: Flask) -> None:
    """Register application routes."""

    @app.route("/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        return jsonify({
            "status": "healthy",
            "service": "outbound-draft-generator",
            "version": __version__
        }), 200

    @app.route("/credits", methods=["GET"])
    def get_balance() -> tuple[Response, int]:
        """
        Current credit balance of the calling user.

        Returns:
            JSON response with user_id and credits.
        """
        user_id = current_user_id()
        credits = get_credit_ledger().get_balance(user_id)
        return jsonify(BalanceResponse(user_id=user_id, credits=credits).model_dump()), 200

    @app.route("/credits/history", methods=["GET"])
    def get_credit_history() -> tuple[Response, int]:
        """
        Credit history of the calling user, newest first.

        Query parameters:
            - limit: (optional) Maximum entries, default 50, capped at 100
        """
        user_id = current_user_id()
        limit = request.args.get("limit", default=50, type=int)
        entries = get_credit_ledger().get_history(user_id, limit=limit)
        response = CreditHistoryResponse(user_id=user_id, entries=entries)
        return jsonify(response.model_dump(mode="json")), 200

    @app.route("/generate", methods=["POST"])
    def generate_drafts() -> tuple[Response, int]:
        """
        Generate up to two email drafts, charging the generation cost.

        Request body: raw form fields (camelCase or snake_case).

        Returns:
            JSON response with drafts and credits_remaining.
        """
        user_id = current_user_id()
        run = get_generation_orchestrator().run(user_id, _json_body())
        response = GenerateDraftsResponse(
            drafts=run.drafts,
            credits_remaining=run.balance_after
        )
        return jsonify(response.model_dump()), 200

    @app.route("/drafts", methods=["POST"])
    def save_draft() -> tuple[Response, int]:
        """
        Save one generated draft.

        Request body:
            - fields: Raw form fields the draft was generated from
            - generatedText: The chosen draft text
        """
        user_id = current_user_id()
        req = SaveDraftRequest(**_json_body())
        draft_id = get_generation_orchestrator().save_draft(
            user_id, req.fields, req.generated_text
        )
        return jsonify(DraftSavedResponse(draft_id=draft_id).model_dump()), 201

    @app.route("/api/generate-email", methods=["POST"])
    def generate_email() -> tuple[Response, int]:
        """
        Intermediary completion endpoint.

        Request body:
            - recipientName, recipientEmail, context, goal, tone
            - config: (optional) {temperature, maxTokens}
            - model: (optional) overrides the configured model

        Returns:
            ``{"drafts": [draft, ...]}`` or ``{"error": message}`` with a non-2xx status.
        """
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({"error": "Missing required fields"}), 400
        try:
            req = GenerateEmailRequest(**body)
        except PydanticValidationError:
            return jsonify({"error": "Missing required fields"}), 400

        config = req.config
        try:
            text = _proxy_backend(req.model).complete(
                PROXY_SYSTEM_INSTRUCTION,
                (
                    f"Recipient: {req.recipient_name} <{req.recipient_email}>\n"
                    f"Context: {req.context}\n"
                    f"Goal: {req.goal}\n"
                    f"Tone: {req.tone}"
                ),
                config.temperature if config else 0.7,
                config.max_tokens if config else 600,
                envelope=RecipientEnvelope(
                    recipient_name=req.recipient_name,
                    recipient_email=req.recipient_email,
                    goal=req.goal,
                    tone=req.tone,
                ),
            )
        except CompletionServiceError as e:
            logger.error("Generate-email request failed", error=str(e))
            return jsonify({"error": e.message}), 500

        drafts = [draft.strip() for draft in text.split(DRAFT_DELIMITER) if draft.strip()]
        return jsonify({"drafts": drafts}), 200


app = create_app()
