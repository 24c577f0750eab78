"""
Data Models Package

This package contains all Pydantic models used in Aqsha Tracker.
All data flowing through the system must conform to these schemas.
"""

from aqsha.models.finance import (
    Account,
    AqshaModel,
    Category,
    CategoryTotal,
    CategoryType,
    DateRange,
    DebtStatus,
    Goal,
    GoalStatus,
    Profile,
    StatisticsResult,
    Transaction,
    TransactionCreate,
    TransactionCriteria,
    TransactionType,
    User,
    ValidationIssue,
)
from aqsha.models.conversation import (
    AIRequestLog,
    ChatMessage,
    ChatRequest,
    ContextSnapshot,
    Conversation,
    ConversationDetail,
    ConversationList,
    ConversationResponse,
    ConversationSummary,
    MessageRole,
)
from aqsha.models.report import (
    ReportFormat,
    ReportPayload,
    ReportRequest,
    ReportResponse,
    ReportType,
)
from aqsha.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AqshaModel",
    "Category",
    "CategoryTotal",
    "CategoryType",
    "DateRange",
    "DebtStatus",
    "Goal",
    "GoalStatus",
    "Profile",
    "StatisticsResult",
    "Transaction",
    "TransactionCreate",
    "TransactionCriteria",
    "TransactionType",
    "User",
    "ValidationIssue",
    # Conversation models
    "AIRequestLog",
    "ChatMessage",
    "ChatRequest",
    "ContextSnapshot",
    "Conversation",
    "ConversationDetail",
    "ConversationList",
    "ConversationResponse",
    "ConversationSummary",
    "MessageRole",
    # Report models
    "ReportFormat",
    "ReportPayload",
    "ReportRequest",
    "ReportResponse",
    "ReportType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
