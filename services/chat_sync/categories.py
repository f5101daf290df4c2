"""Keyword rules that tag chat messages with a care category."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Iterable

from shared.models import CategoryTag

__all__ = [
    "CategoryRule",
    "DEFAULT_CATEGORY_RULES",
    "classify_message",
]


def _fold(text: str) -> str:
    return unicodedata.normalize("NFKC", text).casefold()


@dataclass(frozen=True)
class CategoryRule:
    """A care category and the keywords that select it.

    Keywords are matched as substrings after NFKC folding and case folding,
    so ``SPO2``, ``spo2`` and half-width ``ｵﾑﾂ`` all match their listed form.
    """

    category: CategoryTag
    keywords: tuple[str, ...]

    def matches(self, message: str) -> bool:
        folded = _fold(message)
        return any(_fold(keyword) in folded for keyword in self.keywords)


# Evaluated in order and the first match wins: a message mentioning both a
# fever and urination is tagged as excretion.
DEFAULT_CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        category=CategoryTag.EXCRETION,
        keywords=("便", "尿", "オムツ", "おむつ", "パット", "パッド"),
    ),
    CategoryRule(
        category=CategoryTag.CONDITION,
        keywords=("熱", "度", "体温", "血圧", "SpO2", "痰"),
    ),
    CategoryRule(
        category=CategoryTag.SLEEP,
        keywords=("眠", "覚醒", "鼾", "いびき"),
    ),
)


def classify_message(
    message: str | None,
    rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES,
) -> CategoryTag:
    """Return the category of the first rule matching ``message``.

    Messages that match no rule are tagged :attr:`CategoryTag.OTHER`. No
    default rule emits :attr:`CategoryTag.MEAL`.
    """

    if not message:
        return CategoryTag.OTHER
    for rule in rules:
        if rule.matches(message):
            return rule.category
    return CategoryTag.OTHER
