"""
Expense categorization.

Two interchangeable categorizers share the ExpenseCategorizer contract:
GeminiCategorizer calls the Gemini text-generation service, and
RuleBasedCategorizer runs an offline chain of keyword/regex rules.

Quick Start:
    >>> from roomsplit.categorization import RuleBasedCategorizer
    >>>
    >>> categorizer = RuleBasedCategorizer()
    >>> result = categorizer.categorize("SuperMart", "milk, bread")
    >>> print(f"Categorized as: {result.category}")
"""
from roomsplit.categorization.base import (
    CategorizationError,
    CategorizationResult,
    CategorizationRule,
    ExpenseCategorizer,
)
from roomsplit.categorization.categorizer import RuleBasedCategorizer, create_categorizer
from roomsplit.categorization.gemini import GeminiCategorizer
from roomsplit.categorization.rules import (
    KeywordRule,
    RegexRule,
    UserDefinedRule,
    DefaultRule
)

__all__ = [
    "CategorizationError",
    "CategorizationResult",
    "CategorizationRule",
    "ExpenseCategorizer",
    "GeminiCategorizer",
    "RuleBasedCategorizer",
    "create_categorizer",
    "KeywordRule",
    "RegexRule",
    "UserDefinedRule",
    "DefaultRule",
]
