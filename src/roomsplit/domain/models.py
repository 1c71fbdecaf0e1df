from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

UNCATEGORIZED = "Uncategorized"


@dataclass
class Session:
    """The authenticated caller. Passed explicitly into every service call."""
    user_id: str


@dataclass
class UserProfile:
    """A roommate. room_id is None until the user joins a room."""
    user_id: str
    name: str
    email: str
    room_id: Optional[str] = None
    avatar_url: Optional[str] = None
    monthly_budget: Optional[Decimal] = None
    category_budgets: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def in_room(self) -> bool:
        return self.room_id is not None


@dataclass
class Expense:
    """Core domain model representing a single shared purchase"""
    user_id: str
    room_id: str
    date: date
    shop: str
    items: str
    cost: Decimal
    category: str = UNCATEGORIZED
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    id: Optional[str] = None

    @property
    def has_receipt(self) -> bool:
        return self.image_path is not None

    def __repr__(self):
        return f"Expense({self.date}, {self.shop[:30]}, ${self.cost}, {self.category})"


@dataclass
class ReceiptFile:
    """An image the user wants attached to an expense (or used as avatar)."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class ExpenseDraft:
    """Input for creating an expense. The author comes from the Session."""
    room_id: str
    date: date
    shop: str
    items: str
    cost: Decimal
    receipt: Optional[ReceiptFile] = None


@dataclass
class ExpenseUpdate:
    """
    Input for editing an expense.

    receipt replaces the attached image. remove_image drops it without a
    replacement. The image currently attached is read from the stored record.
    """
    id: str
    date: date
    shop: str
    items: str
    cost: Decimal
    receipt: Optional[ReceiptFile] = None
    remove_image: bool = False
