from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional


class CategorizationError(Exception):
    """
    Raised when an expense category could not be determined.

    auth_failure is True when the cause looks like a missing or rejected
    credential, so callers can point the user at their API key.
    """

    def __init__(self, message: str, auth_failure: bool = False):
        super().__init__(message)
        self.auth_failure = auth_failure


@dataclass
class CategorizationResult:
    """Category label plus an advisory confidence in [0, 1]."""
    category: str
    confidence: float


class ExpenseCategorizer(ABC):
    """Anything that can turn a shop name and item description into a category."""

    @abstractmethod
    def categorize(self, shop_name: str, item_description: str) -> CategorizationResult:
        """
        Categorize a single purchase.

        Args:
            shop_name: Where the purchase was made
            item_description: Free text describing what was bought

        Returns:
            CategorizationResult

        Raises:
            CategorizationError: If the category can't be determined
        """
        pass


class CategorizationRule(ABC):
    """
    One link in an offline rule chain.

    Each rule looks at "<shop> <items>" and either names a category or
    hands the text on to the next link. The chain is iterable, head first.

    Usage:
        head = UserDefinedRule(user_rules)
        head.set_next(UserDefinedRule(builtin_rules)).set_next(DefaultRule())
        head.categorize("SuperMart milk, bread")
    """

    def __init__(self):
        self._next_rule: Optional["CategorizationRule"] = None

    def set_next(self, rule: "CategorizationRule") -> "CategorizationRule":
        """Append a rule after this one and return it, so calls can be chained."""
        self._next_rule = rule
        return rule

    @abstractmethod
    def match(self, text: str) -> Optional[str]:
        """Category for the text, or None if this rule doesn't apply."""

    def categorize(self, text: str) -> Optional[str]:
        for rule in self:
            category = rule.match(text)
            if category is not None:
                return category
        return None

    def __iter__(self) -> Iterator["CategorizationRule"]:
        rule: Optional[CategorizationRule] = self
        while rule is not None:
            yield rule
            rule = rule._next_rule

    def __repr__(self):
        return f"{self.__class__.__name__}()"
