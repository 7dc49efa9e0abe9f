"""
Allergen vocabulary and normalization.

The 9-term vocabulary is fixed. Every AllergenSet used downstream is built
by normalize_allergens() so all metrics operate over the same alphabet.
"""

from enum import IntEnum
from typing import FrozenSet, Iterable, Optional

AllergenSet = FrozenSet[str]


class Allergen(IntEnum):
    MILK = 0
    EGG = 1
    PEANUT = 2
    TREE_NUT = 3
    WHEAT = 4
    SOY = 5
    FISH = 6
    SHELLFISH = 7
    SESAME = 8

    @property
    def label(self) -> str:
        return ALLERGENS[self.value]


ALLERGENS = (
    "milk", "egg", "peanut", "tree nut", "wheat",
    "soy", "fish", "shellfish", "sesame",
)

VOCABULARY = frozenset(ALLERGENS)
VOCABULARY_SIZE = len(ALLERGENS)

EMPTY_TOKENS = frozenset({"empty", "none"})
EMPTY_TEXT = "EMPTY"

_INDEX = {name: Allergen(i) for i, name in enumerate(ALLERGENS)}


def normalize_allergens(text: Optional[str]) -> AllergenSet:
    """
    Convert free-text allergen string into a canonical set.

    Lower-cases, splits on comma, trims tokens and drops blanks plus the
    literal "empty"/"none" markers. Tokens outside the vocabulary are kept.
    """
    if not text or not text.strip():
        return frozenset()
    tokens = (t.strip() for t in text.lower().split(','))
    return frozenset(t for t in tokens if t and t not in EMPTY_TOKENS)


def to_vocabulary(allergens: Iterable[str]) -> AllergenSet:
    """Restrict a set to the 9 canonical allergens."""
    return frozenset(a for a in allergens if a in VOCABULARY)


def format_allergens(allergens: Iterable[str]) -> str:
    """Canonical text form: vocabulary order, extra tokens sorted, or EMPTY."""
    allergens = set(allergens)
    if not allergens:
        return EMPTY_TEXT
    ordered = [a for a in ALLERGENS if a in allergens]
    ordered.extend(sorted(allergens - VOCABULARY))
    return ", ".join(ordered)


def allergen_index(name: str) -> Optional[Allergen]:
    return _INDEX.get(name.strip().lower())
