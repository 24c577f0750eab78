"""
Audit Logger

DESIGN DECISION: Queries, conversation turns, AI calls and reports each
leave an AuditEvent. One correlation id per HTTP request ties its events
together, so a failed chat turn can be traced from the query that built
its context to the gateway error.

Events always go to the structlog JSON stream. Persisting them is best
effort: a broken audit store is logged and the request carries on.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from aqsha.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from aqsha.services.storage import AuditStorageInterface


# JSON lines on the stdlib logging stream
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes AuditEvents to the local log and, if given, an audit store.

    The log_* helpers build the event for one kind of action.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("aqsha.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence failures do not propagate
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_query_executed(
        self,
        user_id: UUID,
        result_count: int,
        criteria: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.query_executed(
            user_id=user_id,
            result_count=result_count,
            criteria=criteria,
            correlation_id=correlation_id,
        ))

    async def log_statistics_computed(
        self,
        user_id: UUID,
        transaction_count: int,
        by_category: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.statistics_computed(
            user_id=user_id,
            transaction_count=transaction_count,
            by_category=by_category,
            correlation_id=correlation_id,
        ))

    async def log_transaction_changed(
        self,
        user_id: UUID,
        transaction_id: UUID,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_changed(
            user_id=user_id,
            transaction_id=transaction_id,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_context_built(
        self,
        user_id: UUID,
        snapshot_id: str,
        transaction_count: int,
        truncated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.context_built(
            user_id=user_id,
            snapshot_id=snapshot_id,
            transaction_count=transaction_count,
            truncated=truncated,
            correlation_id=correlation_id,
        ))

    async def log_conversation_started(
        self,
        user_id: UUID,
        conversation_id: UUID,
        stale_context_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conversation_started(
            user_id=user_id,
            conversation_id=conversation_id,
            stale_context_id=stale_context_id,
            correlation_id=correlation_id,
        ))

    async def log_message_persisted(
        self,
        user_id: UUID,
        conversation_id: UUID,
        message_id: UUID,
        role: str,
        sequence: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.message_persisted(
            user_id=user_id,
            conversation_id=conversation_id,
            message_id=message_id,
            role=role,
            sequence=sequence,
            correlation_id=correlation_id,
        ))

    async def log_ai_request(
        self,
        user_id: UUID,
        conversation_id: Optional[UUID],
        success: bool,
        latency_ms: int,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ai_request(
            user_id=user_id,
            conversation_id=conversation_id,
            success=success,
            latency_ms=latency_ms,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_report_generated(
        self,
        user_id: UUID,
        report_id: UUID,
        report_type: str,
        report_format: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_generated(
            user_id=user_id,
            report_id=report_id,
            report_type=report_type,
            report_format=report_format,
            correlation_id=correlation_id,
        ))

    async def log_report_published(
        self,
        user_id: UUID,
        report_id: UUID,
        url: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_published(
            user_id=user_id,
            report_id=report_id,
            url=url,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        user_id: Optional[UUID],
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            user_id=user_id,
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """One per incoming request."""
    return uuid4()
