"""
Service layer models - DTOs returned by the aggregation functions.

These are read models for charts and reports, not domain entities.
"""
from dataclasses import dataclass
from decimal import Decimal


@dataclass
class UserTotal:
    """How much one roommate has spent."""
    user_id: str
    name: str
    total: Decimal


@dataclass
class CategoryTotal:
    category: str
    total: Decimal


@dataclass
class CategoryBudgetStatus:
    """Month-to-date spend against a per-category limit."""
    category: str
    spent: Decimal
    limit: Decimal
    progress: float

    @property
    def over_budget(self) -> bool:
        return self.spent > self.limit
