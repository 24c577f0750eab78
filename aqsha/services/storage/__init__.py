"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory store is the default; Google Sheets is the persistent option.
"""

from aqsha.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    StorageError,
    filter_transactions,
)
from aqsha.services.storage.memory import InMemoryStorage
from aqsha.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStorage,
    GoogleSheetsFinanceStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ConversationStorageInterface",
    "FinanceStorageInterface",
    "filter_transactions",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "StorageError",
    # Implementations
    "InMemoryStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsConversationStorage",
    "GoogleSheetsFinanceStorage",
]
