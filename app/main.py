"""
HTTP API for Aqsha Tracker

Thin FastAPI layer over the core services. It:
1. Resolves the caller from a bearer token
2. Hands raw parameters to the validator (so bad input is a 400, not a 422)
3. Maps typed core errors to HTTP status codes

DESIGN PRINCIPLES:
1. No business logic here
2. Every core call receives the caller's user id explicitly
3. One correlation id per request ties its audit events together

Run with: uvicorn app.main:app
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse

from aqsha import __version__
from aqsha.audit import create_correlation_id
from aqsha.config import validate_all_settings
from aqsha.errors import (
    AuthorizationError,
    FinanceError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from aqsha.models.finance import User, ValidationIssue
from aqsha.models.report import ReportFormat
from aqsha.orchestrator import AppComponents, create_app_components
from aqsha.services.storage import StorageError
from aqsha.validation import (
    parse_chat_request,
    parse_criteria,
    parse_report_request,
    parse_statistics_params,
    parse_transaction_create,
)


STATUS_CODES = [
    # Most specific first
    (UpstreamTimeoutError, 504),
    (UpstreamError, 502),
    (ValidationError, 400),
    (NotFoundError, 404),
    (AuthorizationError, 401),
]


def status_for(error: FinanceError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def parse_uuid(value: str, field: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}",
            issues=[ValidationIssue(
                field=field,
                issue_type="uuid_parsing",
                message=f"{value!r} is not a valid id",
            )],
        )


async def json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_app(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        components: Pre-wired core services (tests). If None, wired
                   from settings.
    """
    components = components or create_app_components()

    app = FastAPI(
        title="Aqsha Tracker",
        version=__version__,
        description="Personal finance tracking with an AI assistant",
    )
    app.state.components = components

    # =========================================================================
    # Error mapping
    # =========================================================================

    @app.exception_handler(FinanceError)
    async def finance_error_handler(request: Request, exc: FinanceError):
        if isinstance(exc, ValidationError):
            await components.audit_logger.log_validation_failed(
                user_id=None,
                operation=f"{request.method} {request.url.path}",
                issues=[issue.model_dump() for issue in exc.issues],
            )
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        await components.audit_logger.log_error(
            error_type="storage_error",
            error_message=str(exc),
            details={"path": request.url.path},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "storage_error", "message": "Storage unavailable", "details": {}},
        )

    # =========================================================================
    # Auth
    # =========================================================================

    async def current_user(authorization: Optional[str] = Header(default=None)) -> User:
        if not authorization or not authorization.lower().startswith("bearer "):
            raise AuthorizationError("Missing bearer token")
        token = authorization[len("bearer "):].strip()
        if not token:
            raise AuthorizationError("Missing bearer token")

        user = await components.finance_storage.get_user_by_token_hash(User.hash_token(token))
        if user is None:
            raise AuthorizationError("Invalid token")
        return user

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health")
    async def health():
        checks = validate_all_settings()
        return {
            "status": "ok",
            "version": __version__,
            "configured": {
                name: ok for name, ok in checks.items() if not name.endswith("_error")
            },
        }

    # =========================================================================
    # Transactions
    # =========================================================================

    @app.get("/transactions")
    async def list_transactions(request: Request, user: User = Depends(current_user)):
        criteria = parse_criteria(dict(request.query_params))
        return await components.query_engine.query(
            user.id, criteria, create_correlation_id()
        )

    @app.get("/transactions/statistics")
    async def transaction_statistics(request: Request, user: User = Depends(current_user)):
        params = parse_statistics_params(dict(request.query_params))
        return await components.statistics.aggregate(
            user.id,
            params.date_range,
            params.by_category,
            create_correlation_id(),
        )

    @app.get("/transactions/{transaction_id}")
    async def get_transaction(transaction_id: str, user: User = Depends(current_user)):
        return await components.query_engine.get(
            user.id, parse_uuid(transaction_id, "transactionId")
        )

    @app.post("/transactions", status_code=201)
    async def create_transaction(request: Request, user: User = Depends(current_user)):
        payload = parse_transaction_create(await json_body(request))
        return await components.transactions.create(
            user.id, payload, create_correlation_id()
        )

    @app.delete("/transactions/{transaction_id}", status_code=204)
    async def delete_transaction(transaction_id: str, user: User = Depends(current_user)):
        await components.transactions.delete(
            user.id,
            parse_uuid(transaction_id, "transactionId"),
            create_correlation_id(),
        )
        return Response(status_code=204)

    # =========================================================================
    # AI assistant
    # =========================================================================

    @app.post("/ai-assistant/chat")
    async def chat(request: Request, user: User = Depends(current_user)):
        chat_request = parse_chat_request(await json_body(request))
        return await components.conversations.send_message(
            user.id,
            chat_request.message,
            chat_request.context_id,
            create_correlation_id(),
        )

    @app.get("/ai-assistant/conversations")
    async def list_conversations(user: User = Depends(current_user)):
        return await components.conversations.list_conversations(user.id)

    @app.get("/ai-assistant/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str, user: User = Depends(current_user)):
        return await components.conversations.get_conversation(
            user.id, parse_uuid(conversation_id, "conversationId")
        )

    @app.post("/ai-assistant/reports")
    async def generate_report(request: Request, user: User = Depends(current_user)):
        report_request = parse_report_request(await json_body(request))
        report = await components.reports.generate(
            user.id, report_request, create_correlation_id()
        )
        if report.format == ReportFormat.JSON or report.url:
            return report

        rendered = components.reports.render(report)
        filename = f"{report.type.value.lower()}_{report.id}.{rendered.extension}"
        return Response(
            content=rendered.content,
            media_type=rendered.media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/ai-assistant/requests")
    async def list_ai_requests(limit: int = 100, user: User = Depends(current_user)):
        return await components.conversations.list_ai_requests(user.id, max(1, min(limit, 500)))

    return app


app = create_app()
