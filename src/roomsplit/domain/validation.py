"""
Form-level validation.

Runs at the input boundary (the CLI) so bad input never reaches the
services.
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

MIN_SHOP_LENGTH = 2
MIN_ITEMS_LENGTH = 3
MIN_COST = Decimal("0.01")
MIN_ROOM_ID_LENGTH = 6


class ValidationError(Exception):
    """Raised when user input fails form validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def parse_cost(raw: str) -> Decimal:
    """Parse a user-entered amount, e.g. '12.50' or '$12.50'."""
    try:
        return Decimal(str(raw).strip().lstrip("$").replace(",", ""))
    except InvalidOperation:
        raise ValidationError([f"Cost '{raw}' is not a number."])


def validate_expense_fields(
    shop: str,
    items: str,
    cost: Optional[Decimal],
    purchase_date: Optional[date],
) -> None:
    """
    Validate the fields of the add/edit expense form.

    Raises:
        ValidationError: With one message per failed field
    """
    errors = []

    if purchase_date is None:
        errors.append("A date is required.")

    if len((shop or "").strip()) < MIN_SHOP_LENGTH:
        errors.append(f"Shop name must be at least {MIN_SHOP_LENGTH} characters.")

    if len((items or "").strip()) < MIN_ITEMS_LENGTH:
        errors.append(f"Item description must be at least {MIN_ITEMS_LENGTH} characters.")

    if cost is None or not cost.is_finite() or cost < MIN_COST:
        errors.append("Cost must be a positive number.")

    if errors:
        raise ValidationError(errors)


def validate_room_id(room_id: str) -> None:
    if len((room_id or "").strip()) < MIN_ROOM_ID_LENGTH:
        raise ValidationError(
            [f"Room ID must be at least {MIN_ROOM_ID_LENGTH} characters."]
        )


def validate_budget(amount: Decimal) -> None:
    if not amount.is_finite() or amount < 0:
        raise ValidationError(["Budget must be a positive number."])
