from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from roomsplit.database.document_store import Document, DocumentStore, Subscription
from roomsplit.domain.models import UNCATEGORIZED, Expense

EXPENSES = "expenses"

ExpenseSnapshotCallback = Callable[[List[Expense]], None]

UPDATABLE_FIELDS = {"date", "shop", "items", "cost", "category", "image_url", "image_path"}


class ExpenseRepository:
    """
    Persistence for expense records on top of a DocumentStore.

    Dates are stored as ISO strings and costs as strings so no precision
    is lost on the way through JSON.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def add(self, expense: Expense) -> Expense:
        """
        Persist a new expense.

        Returns:
            The same expense with its id populated

        Raises:
            PersistenceError: If the write fails
        """
        expense.id = self.store.add(EXPENSES, self._expense_to_document(expense))
        return expense

    def get(self, expense_id: str) -> Optional[Expense]:
        """Retrieve an expense by ID, or None if it doesn't exist"""
        document = self.store.get(EXPENSES, expense_id)
        if document is None:
            return None
        return self._document_to_expense(document)

    def update(self, expense_id: str, fields: Dict[str, Any]) -> None:
        """
        Merge changed fields into a stored expense.

        Args:
            expense_id: Expense to change
            fields: Expense attribute names mapped to new values.
                Author and room can't be changed.

        Raises:
            ValueError: If a field isn't updatable
            DocumentNotFoundError: If the expense doesn't exist
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update expense fields: {', '.join(sorted(unknown))}")

        self.store.update(EXPENSES, expense_id, self._serialize_fields(fields))

    def delete(self, expense_id: str) -> bool:
        """Delete an expense. Returns True if it existed."""
        return self.store.delete(EXPENSES, expense_id)

    def list_by_room(self, room_id: str) -> List[Expense]:
        """All expenses billed to a room, newest first."""
        documents = self.store.query(EXPENSES, "room_id", room_id)
        return self._sorted(documents)

    def subscribe_room(self, room_id: str, callback: ExpenseSnapshotCallback) -> Subscription:
        """
        Watch a room's expenses.

        The callback always receives the full list (newest first), never a
        diff.
        """
        return self.store.subscribe(
            EXPENSES,
            "room_id",
            room_id,
            lambda documents: callback(self._sorted(documents)),
        )

    def _sorted(self, documents: List[Document]) -> List[Expense]:
        expenses = [self._document_to_expense(doc) for doc in documents]
        return sorted(expenses, key=lambda e: e.date, reverse=True)

    def _serialize_fields(self, fields: Dict[str, Any]) -> Document:
        serialized = {}
        for name, value in fields.items():
            if isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = str(value)
            serialized[name] = value
        return serialized

    def _expense_to_document(self, expense: Expense) -> Document:
        return self._serialize_fields({
            "user_id": expense.user_id,
            "room_id": expense.room_id,
            "date": expense.date,
            "shop": expense.shop,
            "items": expense.items,
            "cost": expense.cost,
            "category": expense.category,
            "image_url": expense.image_url,
            "image_path": expense.image_path,
        })

    def _document_to_expense(self, document: Document) -> Expense:
        return Expense(
            id=document["id"],
            user_id=document["user_id"],
            room_id=document["room_id"],
            date=date.fromisoformat(document["date"]),
            shop=document["shop"],
            items=document["items"],
            cost=Decimal(document["cost"]),
            category=document.get("category") or UNCATEGORIZED,
            image_url=document.get("image_url"),
            image_path=document.get("image_path"),
        )
