"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is an optional backend because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python, same code path as
  the in-memory store)

Each entity type lives in its own worksheet. Row 1 is the header, whose
cells are the model's field names; every cell is stored as RAW text and
parsed back through the pydantic model.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Type, TypeVar
from uuid import UUID

import gspread
import pydantic
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from aqsha.config import GoogleSheetsSettings, get_settings
from aqsha.models.audit import AuditEvent, AuditEventType, AuditSeverity
from aqsha.models.conversation import (
    AIRequestLog,
    ChatMessage,
    Conversation,
    MessageRole,
)
from aqsha.models.finance import (
    Account,
    Category,
    DebtStatus,
    Goal,
    Profile,
    Transaction,
    TransactionCriteria,
    User,
)
from aqsha.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    StorageError,
    filter_transactions,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def _columns(model_cls: Type[pydantic.BaseModel]) -> list[str]:
    return list(model_cls.model_fields.keys())


# Column layouts, one worksheet per entity
USER_COLUMNS = _columns(User)
PROFILE_COLUMNS = _columns(Profile)
ACCOUNT_COLUMNS = _columns(Account)
CATEGORY_COLUMNS = _columns(Category)
TRANSACTION_COLUMNS = _columns(Transaction)
GOAL_COLUMNS = _columns(Goal)
CONVERSATION_COLUMNS = _columns(Conversation)
MESSAGE_COLUMNS = _columns(ChatMessage)
AI_REQUEST_COLUMNS = _columns(AIRequestLog)

# Matches AuditEvent.to_sheets_row
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]

_write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup with retry logic.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @_write_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def worksheet_for(self, kind: str, columns: list[str]) -> gspread.Worksheet:
        """
        Get or create the worksheet for an entity kind.

        kind matches a `<kind>_sheet_name` setting, e.g. "transactions".
        """
        title = getattr(self._settings, f"{kind}_sheet_name")
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def model_to_row(model: pydantic.BaseModel, columns: list[str]) -> list[str]:
    """Serialize a model into RAW cell text, in column order."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        # Excluded fields (e.g. User.token_hash) still need persisting
        value = data[column] if column in data else getattr(model, column, None)
        row.append("" if value is None else str(value))
    return row


def row_to_model(
    model_cls: Type[ModelT],
    header: list[str],
    row: list[str],
) -> ModelT:
    """Parse a row back through the model. Empty cells become defaults."""
    data = {
        column: value
        for column, value in zip(header, row)
        if value != ""
    }
    return model_cls.model_validate(data)


class _SheetsRepository:
    """Shared row plumbing for the Sheets-backed stores."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self, kind: str, columns: list[str]):
        return self._client.worksheet_for(kind, columns)

    def _read(
        self,
        kind: str,
        columns: list[str],
        model_cls: Type[ModelT],
    ) -> list[tuple[int, ModelT]]:
        """
        Read every parseable row as (sheet_row_number, model).

        Malformed rows are skipped with a warning.
        """
        try:
            values = self._sheet(kind, columns).get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read {kind}: {e}")

        if not values:
            return []

        header, rows = values[0], values[1:]
        parsed = []
        for row_number, row in enumerate(rows, start=2):  # Row 1 is header
            if not row or not row[0]:
                continue
            try:
                parsed.append((row_number, row_to_model(model_cls, header, row)))
            except pydantic.ValidationError as e:
                logger.warning(
                    "sheets_row_skipped",
                    sheet=kind,
                    row=row_number,
                    error=str(e),
                )
        return parsed

    @_write_retry
    async def _append(self, kind: str, columns: list[str], model: pydantic.BaseModel) -> None:
        try:
            self._sheet(kind, columns).append_row(
                model_to_row(model, columns),
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to save {kind}: {e}")

    @_write_retry
    async def _replace(
        self,
        kind: str,
        columns: list[str],
        row_number: int,
        model: pydantic.BaseModel,
    ) -> None:
        try:
            self._sheet(kind, columns).update(
                values=[model_to_row(model, columns)],
                range_name=f"A{row_number}",
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to update {kind}: {e}")

    async def _upsert(self, kind: str, columns: list[str], model: Any) -> None:
        for row_number, existing in self._read(kind, columns, type(model)):
            if existing.id == model.id:
                await self._replace(kind, columns, row_number, model)
                return
        await self._append(kind, columns, model)


class GoogleSheetsFinanceStorage(_SheetsRepository, FinanceStorageInterface):
    """Users, reference data and transactions in Google Sheets."""

    async def save_user(self, user: User) -> User:
        await self._upsert("users", USER_COLUMNS, user)
        return user

    async def get_user(self, user_id: UUID) -> Optional[User]:
        for _, user in self._read("users", USER_COLUMNS, User):
            if user.id == user_id:
                return user
        return None

    async def get_user_by_token_hash(self, token_hash: str) -> Optional[User]:
        for _, user in self._read("users", USER_COLUMNS, User):
            if user.token_hash and user.token_hash == token_hash:
                return user
        return None

    async def save_profile(self, profile: Profile) -> Profile:
        await self._upsert("profiles", PROFILE_COLUMNS, profile)
        return profile

    async def list_profiles(self, user_id: UUID) -> list[Profile]:
        rows = self._read("profiles", PROFILE_COLUMNS, Profile)
        return [p for _, p in rows if p.user_id == user_id]

    async def save_account(self, account: Account) -> Account:
        await self._upsert("accounts", ACCOUNT_COLUMNS, account)
        return account

    async def list_accounts(self, user_id: UUID) -> list[Account]:
        rows = self._read("accounts", ACCOUNT_COLUMNS, Account)
        return [a for _, a in rows if a.user_id == user_id]

    async def save_category(self, category: Category) -> Category:
        await self._upsert("categories", CATEGORY_COLUMNS, category)
        return category

    async def list_categories(self, user_id: UUID) -> list[Category]:
        rows = self._read("categories", CATEGORY_COLUMNS, Category)
        return [c for _, c in rows if c.user_id == user_id]

    async def save_goal(self, goal: Goal) -> Goal:
        await self._upsert("goals", GOAL_COLUMNS, goal)
        return goal

    async def list_goals(self, user_id: UUID) -> list[Goal]:
        rows = self._read("goals", GOAL_COLUMNS, Goal)
        return [g for _, g in rows if g.user_id == user_id]

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        for _, existing in self._read("transactions", TRANSACTION_COLUMNS, Transaction):
            if existing.id == transaction.id:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
        await self._append("transactions", TRANSACTION_COLUMNS, transaction)
        return transaction

    async def record_transaction(
        self,
        transaction: Transaction,
        balance_changes: Mapping[UUID, Decimal],
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> Transaction:
        # Targets are resolved before the append; appending never shifts
        # the row numbers they point at.
        writes = self._plan_effects(transaction.user_id, balance_changes, debt_updates)
        await self.save_transaction(transaction)
        for kind, columns, row_number, model in writes:
            await self._replace(kind, columns, row_number, model)
        return transaction

    def _plan_effects(
        self,
        user_id: UUID,
        balance_changes: Optional[Mapping[UUID, Decimal]],
        debt_updates: Optional[Mapping[UUID, DebtStatus]],
    ) -> list[tuple[str, list[str], int, pydantic.BaseModel]]:
        """Resolve each effect to the (sheet, row, new model) it rewrites."""
        writes = []
        if balance_changes:
            accounts = {
                a.id: (row_number, a)
                for row_number, a in self._read("accounts", ACCOUNT_COLUMNS, Account)
                if a.user_id == user_id
            }
            for account_id, delta in balance_changes.items():
                if account_id not in accounts:
                    raise StorageError(f"Account not found: {account_id}")
                row_number, account = accounts[account_id]
                updated = account.model_copy(update={"balance": account.balance + delta})
                writes.append(("accounts", ACCOUNT_COLUMNS, row_number, updated))
        if debt_updates:
            debts = {
                t.id: (row_number, t)
                for row_number, t in self._read("transactions", TRANSACTION_COLUMNS, Transaction)
                if t.user_id == user_id
            }
            for debt_id, status in debt_updates.items():
                if debt_id not in debts:
                    raise StorageError(f"Debt not found: {debt_id}")
                row_number, debt = debts[debt_id]
                updated = debt.model_copy(update={"debt_status": status})
                writes.append(("transactions", TRANSACTION_COLUMNS, row_number, updated))
        return writes

    async def get_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        for _, transaction in self._read("transactions", TRANSACTION_COLUMNS, Transaction):
            if transaction.id == transaction_id and transaction.user_id == user_id:
                return transaction
        return None

    async def delete_transaction(
        self,
        user_id: UUID,
        transaction_id: UUID,
        balance_changes: Optional[Mapping[UUID, Decimal]] = None,
        debt_updates: Optional[Mapping[UUID, DebtStatus]] = None,
    ) -> bool:
        rows = self._read("transactions", TRANSACTION_COLUMNS, Transaction)
        for row_number, transaction in rows:
            if transaction.id == transaction_id and transaction.user_id == user_id:
                # Effects go first: deleting the row renumbers the rows below it
                for kind, columns, target_row, model in self._plan_effects(
                    user_id, balance_changes, debt_updates
                ):
                    await self._replace(kind, columns, target_row, model)
                try:
                    self._sheet("transactions", TRANSACTION_COLUMNS).delete_rows(row_number)
                except Exception as e:
                    raise StorageError(f"Failed to delete transaction: {e}")
                return True
        return False

    async def list_transactions(
        self,
        user_id: UUID,
        criteria: Optional[TransactionCriteria] = None,
    ) -> list[Transaction]:
        rows = self._read("transactions", TRANSACTION_COLUMNS, Transaction)
        return filter_transactions((t for _, t in rows), user_id, criteria)


class GoogleSheetsConversationStorage(_SheetsRepository, ConversationStorageInterface):
    """Conversations, messages and the AI request log in Google Sheets."""

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        if await self.get_conversation(conversation.id) is not None:
            raise DuplicateError(f"Conversation already exists: {conversation.id}")
        await self._append("conversations", CONVERSATION_COLUMNS, conversation)
        return conversation

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        for _, conversation in self._read("conversations", CONVERSATION_COLUMNS, Conversation):
            if conversation.id == conversation_id:
                return conversation
        return None

    async def list_conversations(self, user_id: UUID) -> list[Conversation]:
        rows = self._read("conversations", CONVERSATION_COLUMNS, Conversation)
        owned = [c for _, c in rows if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    async def append_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
    ) -> ChatMessage:
        conversation_rows = self._read("conversations", CONVERSATION_COLUMNS, Conversation)
        found = [(n, c) for n, c in conversation_rows if c.id == conversation_id]
        if not found:
            raise StorageError(f"Conversation not found: {conversation_id}")
        row_number, conversation = found[0]

        existing = await self.list_messages(conversation_id)
        sequence = existing[-1].sequence + 1 if existing else 1
        message = ChatMessage(
            conversation_id=conversation_id,
            role=role,
            content=content,
            sequence=sequence,
        )
        await self._append("messages", MESSAGE_COLUMNS, message)

        conversation.updated_at = max(datetime.utcnow(), conversation.updated_at)
        await self._replace("conversations", CONVERSATION_COLUMNS, row_number, conversation)
        return message

    async def list_messages(self, conversation_id: UUID) -> list[ChatMessage]:
        rows = self._read("messages", MESSAGE_COLUMNS, ChatMessage)
        messages = [m for _, m in rows if m.conversation_id == conversation_id]
        return sorted(messages, key=lambda m: m.sequence)

    async def append_ai_request(self, entry: AIRequestLog) -> AIRequestLog:
        await self._append("ai_requests", AI_REQUEST_COLUMNS, entry)
        return entry

    async def list_ai_requests(
        self,
        user_id: UUID,
        limit: int = 100,
    ) -> list[AIRequestLog]:
        rows = self._read("ai_requests", AI_REQUEST_COLUMNS, AIRequestLog)
        owned = [r for _, r in rows if r.user_id == user_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return owned[:limit]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self):
        return self._client.worksheet_for("audit", AUDIT_COLUMNS)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    def _events(self) -> list[AuditEvent]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, pydantic.ValidationError) as e:
                logger.warning("audit_row_skipped", error=str(e))
        return events

    @_write_retry
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
