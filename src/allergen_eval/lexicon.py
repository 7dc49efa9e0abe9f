"""
Ingredient keyword lexicon for hallucination checks.

A predicted allergen is "justified" when one of its keywords appears as a
substring of the ingredient text. Heuristic by nature: "nut" matches
"nutmeg", "starch" matches corn starch.
"""

from types import MappingProxyType
from typing import Mapping, Tuple

ALLERGEN_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    'milk': (
        'milk', 'cream', 'butter', 'cheese', 'whey', 'casein', 'lactose',
        'dairy', 'yogurt', 'ghee', 'curd', 'buttermilk',
    ),
    'egg': (
        'egg', 'albumin', 'mayonnaise', 'meringue', 'ovum', 'lysozyme',
        'ovalbumin',
    ),
    'peanut': ('peanut', 'groundnut', 'arachis', 'monkey nut'),
    'tree nut': (
        'almond', 'walnut', 'cashew', 'pecan', 'pistachio', 'hazelnut',
        'macadamia', 'brazil nut', 'chestnut', 'nut', 'praline', 'marzipan',
        'nougat',
    ),
    'wheat': (
        'wheat', 'flour', 'gluten', 'semolina', 'durum', 'spelt', 'bulgur',
        'couscous', 'bread', 'pasta', 'noodle', 'cereal', 'bran', 'starch',
    ),
    'soy': ('soy', 'soya', 'tofu', 'edamame', 'miso', 'tempeh', 'lecithin'),
    'fish': (
        'fish', 'anchovy', 'sardine', 'tuna', 'salmon', 'cod', 'bass',
        'mackerel', 'tilapia', 'trout', 'herring', 'haddock',
    ),
    'shellfish': (
        'shrimp', 'prawn', 'crab', 'lobster', 'crayfish', 'oyster', 'mussel',
        'clam', 'scallop', 'crustacean', 'mollusk', 'squid', 'octopus',
    ),
    'sesame': ('sesame', 'tahini', 'halvah', 'hummus'),
})


def is_justified(allergen: str, ingredients: str) -> bool:
    """True if any keyword for the allergen occurs in the ingredient text."""
    keywords = ALLERGEN_KEYWORDS.get(allergen.strip().lower())
    if not keywords or not ingredients:
        return False
    text = ingredients.lower()
    return any(kw in text for kw in keywords)
