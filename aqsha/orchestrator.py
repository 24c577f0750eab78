"""
Component Wiring for Aqsha Tracker

This module ties together all the components behind the HTTP surface:
1. Transaction queries and statistics
2. Assistant conversations (context -> agent -> gateway)
3. Reports (generate -> render -> optionally publish)

DESIGN DECISION: Every external dependency (storage backend, AI
gateway, report publisher) is optional at wiring time. Missing
configuration degrades to the in-memory store, a gateway that reports
itself unavailable, and inline report bodies. Nothing fails at startup.
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog

from aqsha.agents import AIGatewayInterface, FinanceAssistantAgent, GeminiGateway
from aqsha.assistant import ContextBuilder, ConversationManager
from aqsha.audit import AuditLogger
from aqsha.config import AppSettings, get_settings
from aqsha.errors import UpstreamError
from aqsha.models.conversation import ChatMessage
from aqsha.queries import StatisticsAggregator, TransactionQueryEngine
from aqsha.reports import ReportGenerator
from aqsha.services.publishing import CloudinaryReportPublisher
from aqsha.services.storage import (
    AuditStorageInterface,
    ConversationStorageInterface,
    FinanceStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStorage,
    GoogleSheetsFinanceStorage,
    InMemoryStorage,
)
from aqsha.transactions import TransactionService
from aqsha.validation import RequestValidator


logger = structlog.get_logger(__name__)


class UnavailableGateway(AIGatewayInterface):
    """Stands in when no AI provider is configured; every call fails."""

    def __init__(self, reason: str):
        self._reason = reason

    async def complete(self, system_prompt: str, messages: list[ChatMessage]) -> str:
        raise UpstreamError(f"AI gateway not configured: {self._reason}")


@dataclass
class AppComponents:
    finance_storage: FinanceStorageInterface
    conversation_storage: ConversationStorageInterface
    audit_logger: AuditLogger
    query_engine: TransactionQueryEngine
    statistics: StatisticsAggregator
    transactions: TransactionService
    context_builder: ContextBuilder
    conversations: ConversationManager
    reports: ReportGenerator


def _create_storage(
    settings: AppSettings,
) -> tuple[FinanceStorageInterface, ConversationStorageInterface, AuditStorageInterface]:
    if settings.storage_backend == "google_sheets":
        try:
            client = GoogleSheetsClient()
            return (
                GoogleSheetsFinanceStorage(client),
                GoogleSheetsConversationStorage(client),
                GoogleSheetsAuditStorage(client),
            )
        except Exception as e:
            logger.warning("storage_not_configured", backend="google_sheets", error=str(e))

    memory = InMemoryStorage()
    return memory, memory, memory


def _create_gateway() -> AIGatewayInterface:
    try:
        return GeminiGateway()
    except Exception as e:
        logger.warning("gateway_not_configured", error=str(e))
        return UnavailableGateway(str(e))


def _create_publisher(settings: AppSettings) -> Optional[CloudinaryReportPublisher]:
    if not settings.publish_reports:
        return None
    try:
        return CloudinaryReportPublisher()
    except Exception as e:
        logger.warning("publisher_not_configured", error=str(e))
        return None


def create_app_components(
    storage: Optional[Union[InMemoryStorage, tuple]] = None,
    gateway: Optional[AIGatewayInterface] = None,
    publisher: Optional[CloudinaryReportPublisher] = None,
    settings: Optional[AppSettings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage: An InMemoryStorage, or a (finance, conversation, audit)
                tuple. If None, chosen by APP storage_backend.
        gateway: AI gateway. If None, Gemini when configured.
        publisher: Report publisher. If None, Cloudinary when
                  publish_reports is enabled and configured.
        settings: App settings override (tests).
    """
    settings = settings or get_settings().app

    if storage is None:
        finance, conversation, audit = _create_storage(settings)
    elif isinstance(storage, tuple):
        finance, conversation, audit = storage
    else:
        finance = conversation = audit = storage

    audit_logger = AuditLogger(audit)
    query_engine = TransactionQueryEngine(finance, audit_logger)
    validator = RequestValidator(finance)
    context_builder = ContextBuilder(finance, query_engine, audit_logger, settings)
    agent = FinanceAssistantAgent(gateway or _create_gateway())

    return AppComponents(
        finance_storage=finance,
        conversation_storage=conversation,
        audit_logger=audit_logger,
        query_engine=query_engine,
        statistics=StatisticsAggregator(finance, query_engine, audit_logger),
        transactions=TransactionService(finance, validator, audit_logger),
        context_builder=context_builder,
        conversations=ConversationManager(
            finance,
            conversation,
            context_builder,
            agent,
            audit_logger,
            settings,
        ),
        reports=ReportGenerator(
            finance,
            query_engine,
            validator,
            publisher or _create_publisher(settings),
            audit_logger,
            settings,
        ),
    )
