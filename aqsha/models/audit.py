"""
Audit Models for Aqsha Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every query, conversation turn and report
2. Debugging information when the AI gateway misbehaves
3. Ability to reconstruct what context the assistant was given

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transaction queries
    QUERY_EXECUTED = "query_executed"
    STATISTICS_COMPUTED = "statistics_computed"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"

    # Assistant
    CONTEXT_BUILT = "context_built"
    CONVERSATION_STARTED = "conversation_started"
    MESSAGE_PERSISTED = "message_persisted"
    AI_REQUEST_SUCCEEDED = "ai_request_succeeded"
    AI_REQUEST_FAILED = "ai_request_failed"

    # Reports
    REPORT_GENERATED = "report_generated"
    REPORT_PUBLISHED = "report_published"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what
    user_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'conversation', 'report')"
    )
    entity_id: Optional[UUID] = None

    # Ties together every event of one request
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.user_id) if self.user_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.query_executed(user_id, 12, criteria, correlation_id)
        event = AuditEventBuilder.ai_request_failed(user_id, conversation_id, "timeout")
    """

    @staticmethod
    def query_executed(
        user_id: UUID,
        result_count: int,
        criteria: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            user_id=user_id,
            entity_type="transaction_query",
            correlation_id=correlation_id,
            description=f"Transaction query returned {result_count} results",
            details={"result_count": result_count, "criteria": criteria},
        )

    @staticmethod
    def statistics_computed(
        user_id: UUID,
        transaction_count: int,
        by_category: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATISTICS_COMPUTED,
            user_id=user_id,
            entity_type="statistics",
            correlation_id=correlation_id,
            description=f"Statistics computed over {transaction_count} transactions",
            details={"transaction_count": transaction_count, "by_category": by_category},
        )

    @staticmethod
    def transaction_changed(
        user_id: UUID,
        transaction_id: UUID,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TRANSACTION_CREATED
                if created
                else AuditEventType.TRANSACTION_DELETED
            ),
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction created" if created else "Transaction deleted",
        )

    @staticmethod
    def context_built(
        user_id: UUID,
        snapshot_id: str,
        transaction_count: int,
        truncated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTEXT_BUILT,
            user_id=user_id,
            entity_type="context",
            correlation_id=correlation_id,
            description=f"Context built with {transaction_count} transactions",
            details={
                "snapshot_id": snapshot_id,
                "transaction_count": transaction_count,
                "truncated": truncated,
            },
        )

    @staticmethod
    def conversation_started(
        user_id: UUID,
        conversation_id: UUID,
        stale_context_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        details = {}
        if stale_context_id:
            details["stale_context_id"] = str(stale_context_id)
        return AuditEvent(
            event_type=AuditEventType.CONVERSATION_STARTED,
            user_id=user_id,
            entity_type="conversation",
            entity_id=conversation_id,
            correlation_id=correlation_id,
            description="New conversation started",
            details=details,
        )

    @staticmethod
    def message_persisted(
        user_id: UUID,
        conversation_id: UUID,
        message_id: UUID,
        role: str,
        sequence: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_PERSISTED,
            user_id=user_id,
            entity_type="message",
            entity_id=message_id,
            correlation_id=correlation_id,
            description=f"{role.capitalize()} message #{sequence} persisted",
            details={
                "conversation_id": str(conversation_id),
                "role": role,
                "sequence": sequence,
            },
        )

    @staticmethod
    def ai_request(
        user_id: UUID,
        conversation_id: Optional[UUID],
        success: bool,
        latency_ms: int,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.AI_REQUEST_SUCCEEDED
                if success
                else AuditEventType.AI_REQUEST_FAILED
            ),
            severity=AuditSeverity.INFO if success else AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="conversation",
            entity_id=conversation_id,
            correlation_id=correlation_id,
            description=(
                f"AI request completed in {latency_ms}ms"
                if success
                else "AI request failed"
            ),
            details={"latency_ms": latency_ms},
            error_message=error_message,
        )

    @staticmethod
    def report_generated(
        user_id: UUID,
        report_id: UUID,
        report_type: str,
        report_format: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            user_id=user_id,
            entity_type="report",
            entity_id=report_id,
            correlation_id=correlation_id,
            description=f"{report_type} report generated as {report_format}",
            details={"report_type": report_type, "format": report_format},
        )

    @staticmethod
    def report_published(
        user_id: UUID,
        report_id: UUID,
        url: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_PUBLISHED,
            user_id=user_id,
            entity_type="report",
            entity_id=report_id,
            correlation_id=correlation_id,
            description="Report published",
            details={"url": url},
        )

    @staticmethod
    def validation_failed(
        user_id: Optional[UUID],
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=operation,
            correlation_id=correlation_id,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
