"""Shared item name normalization utilities."""

import re

_IRREGULAR_PLURALS = {
    "brownies": "brownie",
    "children": "child",
    "cookies": "cookie",
    "smoothies": "smoothie",
    "veggies": "veggie",
    "feet": "foot",
    "geese": "goose",
    "leaves": "leaf",
    "loaves": "loaf",
    "knives": "knife",
    "mice": "mouse",
    "teeth": "tooth",
}
# Words that look plural but are not, or whose plural is the same word
_UNCOUNTABLE = {
    "asparagus",
    "bass",
    "broccoli",
    "cheese",
    "couscous",
    "fish",
    "grass",
    "hummus",
    "molasses",
    "news",
    "octopus",
    "rice",
    "salmon",
    "shrimp",
    "species",
    "swiss",
    "watercress",
}
# Singulars ending in "oe", which the "-oes" rule would cut short
_OE_SINGULARS = {"canoe", "doe", "floe", "foe", "hoe", "oboe", "roe", "shoe", "sloe", "toe"}
_SUFFIX_RULES = [
    (re.compile(r"(.+[^aeiou])ies$"), r"\1y"),
    (re.compile(r"(.+(?:ss|sh|ch|x|z))es$"), r"\1"),
    (re.compile(r"(.+o)es$"), r"\1"),
    (re.compile(r"(.+[^s])s$"), r"\1"),
]


def singularize(word: str) -> str:
    """Convert an English word to its singular form (best effort)."""
    if word in _IRREGULAR_PLURALS:
        return _IRREGULAR_PLURALS[word]
    if word in _UNCOUNTABLE or len(word) <= 3 or word.endswith(("us", "is", "ss")):
        return word
    if word.endswith("oes") and word[:-1] in _OE_SINGULARS:
        return word[:-1]

    for pattern, replacement in _SUFFIX_RULES:
        if pattern.match(word):
            return pattern.sub(replacement, word)
    return word


def normalize_item_name(item_name: str) -> str:
    """Normalize an item name into its deduplication key.

    Lowercases, collapses whitespace and singularizes the final word, so
    "Apples", " apple " and "APPLE" all match.
    """
    tokens = item_name.lower().split()
    if not tokens:
        return ""
    tokens[-1] = singularize(tokens[-1])
    return " ".join(tokens)
