import logging
from typing import Any, Dict, List, Optional

from roomsplit.categorization.base import (
    CategorizationResult,
    CategorizationRule,
    ExpenseCategorizer,
)
from roomsplit.categorization.gemini import GeminiCategorizer
from roomsplit.categorization.rules import DefaultRule, UserDefinedRule
from roomsplit.config.settings import ConfigLoader, Settings
from roomsplit.domain.models import UNCATEGORIZED

logger = logging.getLogger(__name__)


class RuleBasedCategorizer(ExpenseCategorizer):
    """
    Offline categorizer backed by keyword/regex rules.

    Builds a chain of rules in priority order:
    1. User-defined rules (from config)
    2. Built-in rules
    3. Default (Uncategorized)

    Never raises CategorizationError. A rule match has confidence 1.0,
    the fallback has confidence 0.0.

    Usage:
        # Production - loads from ConfigLoader
        categorizer = RuleBasedCategorizer()

        # Testing - inject custom config
        categorizer = RuleBasedCategorizer(config={"rules": [...]})
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        use_defaults: bool = True,
    ):
        """
        Args:
            config: Optional user rules config. If None, loads
                categorization_rules.json through ConfigLoader.
            use_defaults: Whether to include built-in rules
        """
        self.use_defaults = use_defaults
        self._rule_chain: Optional[CategorizationRule] = None

        self._build_rule_chain(config)

    def _load_user_rules_config(self, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if config is not None:
            return config

        try:
            return ConfigLoader.load_config('categorization_rules.json')
        except FileNotFoundError:
            # User hasn't created custom rules yet - that's fine.
            return {"rules": []}

    def _load_builtin_rules_config(self) -> Dict[str, Any]:
        try:
            return ConfigLoader.load_rules_config()
        except FileNotFoundError:
            logger.warning("Built-in categorization rules not found, using fallback only")
            return {"rules": []}

    def _build_rule_chain(self, user_config: Optional[Dict[str, Any]] = None) -> None:
        groups = [self._load_user_rules_config(user_config).get("rules", [])]
        if self.use_defaults:
            groups.append(self._load_builtin_rules_config().get("rules", []))

        rules: List[CategorizationRule] = [UserDefinedRule(g) for g in groups if g]
        rules.append(DefaultRule(UNCATEGORIZED))

        self._rule_chain = rules[0]
        tail = self._rule_chain
        for rule in rules[1:]:
            tail = tail.set_next(rule)

        logger.debug("Rule chain: %s", " -> ".join(repr(r) for r in self._rule_chain))

    def categorize(self, shop_name: str, item_description: str) -> CategorizationResult:
        category = self._rule_chain.categorize(f"{shop_name} {item_description}") or UNCATEGORIZED
        confidence = 0.0 if category == UNCATEGORIZED else 1.0
        return CategorizationResult(category=category, confidence=confidence)

    def get_rule_chain_info(self) -> str:
        """Active rules in priority order, one per line."""
        return "\n".join(
            f"{priority}. {rule}" for priority, rule in enumerate(self._rule_chain, start=1)
        )

    def __repr__(self) -> str:
        return f"RuleBasedCategorizer({len(list(self._rule_chain))} rules in chain)"


def create_categorizer(settings: Settings) -> ExpenseCategorizer:
    """
    Build the categorizer selected in settings.

    Raises:
        ValueError: If the configured backend is unknown
    """
    if settings.categorizer == "gemini":
        return GeminiCategorizer(
            api_key=settings.google_api_key,
            model_name=settings.gemini_model,
        )

    if settings.categorizer == "rules":
        return RuleBasedCategorizer()

    raise ValueError(
        f"Unknown categorizer '{settings.categorizer}'. "
        f"Available categorizers: gemini, rules"
    )
