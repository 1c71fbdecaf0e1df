import re
from typing import Dict, List, Optional

from roomsplit.categorization.base import CategorizationRule
from roomsplit.domain.models import UNCATEGORIZED


class KeywordRule(CategorizationRule):
    """
    Case-insensitive substring match on any of a category's keywords.

    Example:
        KeywordRule("Groceries", ["supermart", "milk"])
    """

    def __init__(self, category: str, keywords: List[str]):
        super().__init__()
        self.category = category
        self.keywords = [kw.lower() for kw in keywords]

    def match(self, text: str) -> Optional[str]:
        lowered = text.lower()
        if any(keyword in lowered for keyword in self.keywords):
            return self.category
        return None

    def __repr__(self):
        return f"KeywordRule('{self.category}', {len(self.keywords)} keywords)"


class RegexRule(CategorizationRule):
    """
    Case-insensitive regex search, e.g. RegexRule("Transportation", [r"\\buber\\b"]).
    """

    def __init__(self, category: str, patterns: List[str]):
        super().__init__()
        self.category = category
        self.patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def match(self, text: str) -> Optional[str]:
        if any(p.search(text) for p in self.patterns):
            return self.category
        return None

    def __repr__(self) -> str:
        return f"RegexRule('{self.category}', {len(self.patterns)} patterns)"


RULE_TYPES = {
    "keyword": KeywordRule,
    "regex": RegexRule,
}


class UserDefinedRule(CategorizationRule):
    """
    A group of rules loaded from a JSON rules file.

    Config format:
        {
            "rules": [
                {"category": "Groceries", "patterns": ["supermart"], "type": "keyword"},
                {"category": "Transportation", "patterns": ["\\\\buber\\\\b"], "type": "regex"}
            ]
        }

    Entries are tried in file order; "type" defaults to keyword.
    """

    def __init__(self, rule_defs: List[Dict]):
        super().__init__()
        self.rules: List[CategorizationRule] = [self._build(d) for d in rule_defs]

    @staticmethod
    def _build(rule_def: Dict) -> CategorizationRule:
        rule_type = rule_def.get("type", "keyword")
        rule_cls = RULE_TYPES.get(rule_type)
        if rule_cls is None:
            raise ValueError(
                f"Unknown rule type '{rule_type}' for category '{rule_def['category']}'"
            )
        return rule_cls(rule_def["category"], rule_def["patterns"])

    def match(self, text: str) -> Optional[str]:
        for rule in self.rules:
            category = rule.match(text)
            if category is not None:
                return category
        return None

    def __repr__(self) -> str:
        return f"UserDefinedRule({len(self.rules)} rules)"


class DefaultRule(CategorizationRule):
    """Always matches. Goes last."""

    def __init__(self, default_category: str = UNCATEGORIZED):
        super().__init__()
        self.default_category = default_category

    def match(self, text: str) -> Optional[str]:
        return self.default_category

    def __repr__(self) -> str:
        return f"DefaultRule('{self.default_category}')"
