"""Transaction write package."""

from aqsha.transactions.service import TransactionService

__all__ = ["TransactionService"]
