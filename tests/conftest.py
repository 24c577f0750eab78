"""
Shared fixtures for Aqsha Tracker tests.

The example dataset (all 2023) belongs to Alice:

    salary      income   1000   Jan 15
    grocery     expense   200   Jan 5
    freelance   income    500   Feb 10
    rent        expense   800   Feb 1
    bonus       income   2000   Mar 20
    utilities   expense   100   Mar 5
    transfer    transfer  500   Mar 15

Bob owns a single salary transaction whose description also matches
"salary", to catch tenant leaks.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio

from aqsha.agents import AIGatewayInterface
from aqsha.config import AppSettings
from aqsha.models.conversation import ChatMessage
from aqsha.models.finance import (
    Account,
    Category,
    CategoryType,
    Goal,
    Profile,
    Transaction,
    TransactionType,
    User,
)
from aqsha.orchestrator import create_app_components
from aqsha.services.storage import InMemoryStorage


ALICE_TOKEN = "alice-token"
BOB_TOKEN = "bob-token"


class FakeGateway(AIGatewayInterface):
    """Scripted gateway. Records every call."""

    def __init__(self, replies: Optional[list[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or ["You earned 3500 and spent 1100."])
        self.error = error
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    async def complete(self, system_prompt: str, messages: list[ChatMessage]) -> str:
        self.calls.append((system_prompt, list(messages)))
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakePublisher:
    """Stands in for CloudinaryReportPublisher."""

    def __init__(self):
        self.uploads = []

    async def publish(self, user_id, report_id, content, extension):
        self.uploads.append((user_id, report_id, content, extension))
        return f"https://res.example.com/raw/{user_id}/{report_id}.{extension}"


@dataclass
class Dataset:
    storage: InMemoryStorage
    alice: User
    bob: User
    profile: Profile
    accounts: dict[str, Account] = field(default_factory=dict)
    categories: dict[str, Category] = field(default_factory=dict)
    transactions: dict[str, Transaction] = field(default_factory=dict)
    goals: dict[str, Goal] = field(default_factory=dict)
    bob_category: Optional[Category] = None
    bob_transaction: Optional[Transaction] = None


async def seed_dataset(storage: InMemoryStorage) -> Dataset:
    alice = await storage.save_user(User(
        email="alice@example.com",
        name="Alice",
        token_hash=User.hash_token(ALICE_TOKEN),
    ))
    bob = await storage.save_user(User(
        email="bob@example.com",
        name="Bob",
        token_hash=User.hash_token(BOB_TOKEN),
    ))
    profile = await storage.save_profile(Profile(user_id=alice.id, name="Personal"))
    data = Dataset(storage=storage, alice=alice, bob=bob, profile=profile)

    data.accounts["card"] = await storage.save_account(Account(
        user_id=alice.id, profile_id=profile.id, name="Card", balance=Decimal("2400"),
    ))
    data.accounts["cash"] = await storage.save_account(Account(
        user_id=alice.id, profile_id=profile.id, name="Cash", balance=Decimal("150"),
    ))

    for key, name, category_type in (
        ("salary", "Salary", CategoryType.INCOME),
        ("freelance", "Freelance", CategoryType.INCOME),
        ("groceries", "Groceries", CategoryType.EXPENSE),
        ("rent", "Rent", CategoryType.EXPENSE),
        ("utilities", "Utilities", CategoryType.EXPENSE),
    ):
        data.categories[key] = await storage.save_category(Category(
            user_id=alice.id, name=name, category_type=category_type,
        ))

    created = datetime(2023, 1, 1, 9, 0, 0)
    rows = (
        ("salary", TransactionType.INCOME, "1000", date(2023, 1, 15), "Salary January", "salary"),
        ("grocery", TransactionType.EXPENSE, "200", date(2023, 1, 5), "Grocery store", "groceries"),
        ("freelance", TransactionType.INCOME, "500", date(2023, 2, 10), "Freelance project", "freelance"),
        ("rent", TransactionType.EXPENSE, "800", date(2023, 2, 1), "Rent payment", "rent"),
        ("bonus", TransactionType.INCOME, "2000", date(2023, 3, 20), "Annual bonus", "salary"),
        ("utilities", TransactionType.EXPENSE, "100", date(2023, 3, 5), "Electricity bill", "utilities"),
    )
    for index, (key, tx_type, amount, day, description, category) in enumerate(rows):
        data.transactions[key] = await storage.save_transaction(Transaction(
            user_id=alice.id,
            profile_id=profile.id,
            type=tx_type,
            amount=Decimal(amount),
            date=day,
            description=description,
            category_id=data.categories[category].id,
            account_id=data.accounts["card"].id,
            created_at=created + timedelta(minutes=index),
        ))

    data.transactions["transfer"] = await storage.save_transaction(Transaction(
        user_id=alice.id,
        profile_id=profile.id,
        type=TransactionType.TRANSFER,
        amount=Decimal("500"),
        date=date(2023, 3, 15),
        description="Move to cash",
        from_account_id=data.accounts["card"].id,
        to_account_id=data.accounts["cash"].id,
        created_at=created + timedelta(minutes=len(rows)),
    ))

    data.goals["vacation"] = await storage.save_goal(Goal(
        user_id=alice.id,
        title="Vacation",
        target=Decimal("1200"),
        saved=Decimal("600"),
        deadline=date(2023, 12, 31),
        created_at=datetime(2023, 1, 1),
    ))
    data.goals["laptop"] = await storage.save_goal(Goal(
        user_id=alice.id,
        title="Laptop",
        target=Decimal("1000"),
        saved=Decimal("100"),
        deadline=date(2023, 4, 30),
        created_at=datetime(2023, 1, 1),
    ))
    data.goals["emergency"] = await storage.save_goal(Goal(
        user_id=alice.id,
        title="Emergency fund",
        target=Decimal("500"),
        saved=Decimal("500"),
        created_at=datetime(2023, 1, 1),
    ))

    data.bob_category = await storage.save_category(Category(
        user_id=bob.id, name="Salary", category_type=CategoryType.INCOME,
    ))
    bob_account = await storage.save_account(Account(user_id=bob.id, name="Bob card"))
    data.bob_transaction = await storage.save_transaction(Transaction(
        user_id=bob.id,
        type=TransactionType.INCOME,
        amount=Decimal("1000"),
        date=date(2023, 1, 15),
        description="Salary from ACME",
        category_id=data.bob_category.id,
        account_id=bob_account.id,
    ))
    return data


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        context_transaction_limit=50,
        context_window_days=30,
        context_max_chars=12000,
        conversation_title_length=20,
        report_default_days=30,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def dataset():
    return await seed_dataset(InMemoryStorage())


@pytest.fixture
def components(dataset, gateway, settings):
    return create_app_components(
        storage=dataset.storage,
        gateway=gateway,
        settings=settings,
    )
