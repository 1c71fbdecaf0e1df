import pytest
from datetime import date
from decimal import Decimal
from typing import List

from roomsplit.database.connection import DatabaseConfig, DatabaseManager
from roomsplit.database.document_store import SQLiteDocumentStore
from roomsplit.domain.models import Expense, ReceiptFile, Session, UserProfile
from roomsplit.storage.local import LocalMediaStore


@pytest.fixture
def test_db(tmp_path):
    """
    Create a real test database.

    Uses pytest's tmp_path so every test gets a fresh file.
    """
    db_manager = DatabaseManager(DatabaseConfig(tmp_path / "test.db"))
    db_manager.initialize()

    yield db_manager

    db_manager.close()


@pytest.fixture
def document_store(test_db) -> SQLiteDocumentStore:
    return SQLiteDocumentStore(test_db)


@pytest.fixture
def media_store(tmp_path) -> LocalMediaStore:
    return LocalMediaStore(tmp_path / "media", "http://media.test")


@pytest.fixture
def session() -> Session:
    return Session(user_id="alice-0001")


@pytest.fixture
def receipt() -> ReceiptFile:
    return ReceiptFile(filename="receipt.jpg", content=b"\xff\xd8fake-jpeg", content_type="image/jpeg")


@pytest.fixture
def roster() -> List[UserProfile]:
    return [
        UserProfile(user_id="alice-0001", name="Alice", email="alice@example.com", room_id="room-abc123"),
        UserProfile(user_id="bob-0002", name="bob", email="bob@example.com", room_id="room-abc123"),
    ]


@pytest.fixture
def sample_expenses() -> List[Expense]:
    """A month of room expenses from two roommates and one former roommate"""
    return [
        Expense(
            id="e1",
            user_id="alice-0001",
            room_id="room-abc123",
            date=date(2025, 3, 2),
            shop="SuperMart",
            items="milk, bread",
            cost=Decimal("12.50"),
            category="Groceries",
        ),
        Expense(
            id="e2",
            user_id="bob-0002",
            room_id="room-abc123",
            date=date(2025, 3, 10),
            shop="City Power",
            items="electricity bill",
            cost=Decimal("80.00"),
            category="Utilities",
        ),
        Expense(
            id="e3",
            user_id="alice-0001",
            room_id="room-abc123",
            date=date(2025, 2, 27),
            shop="aldi",
            items="eggs and rice",
            cost=Decimal("20.25"),
            category="Groceries",
        ),
        Expense(
            id="e4",
            user_id="gone-user-9xyz",
            room_id="room-abc123",
            date=date(2025, 3, 15),
            shop="Hardware Hub",
            items="light bulbs",
            cost=Decimal("7.75"),
            category="",
        ),
    ]
