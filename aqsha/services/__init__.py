"""Services package."""

from aqsha.services.publishing import (
    CloudinaryReportPublisher,
    ReportPublishError,
)
from aqsha.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStorage,
    GoogleSheetsFinanceStorage,
    InMemoryStorage,
    StorageError,
)

__all__ = [
    # Publishing
    "CloudinaryReportPublisher",
    "ReportPublishError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "ConversationStorageInterface",
    "DuplicateError",
    "FinanceStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsConversationStorage",
    "GoogleSheetsFinanceStorage",
    "InMemoryStorage",
    "StorageError",
]
