"""Word based fuzzy matching between transaction descriptions and product names."""

from __future__ import annotations

# Fraction of product words that must be found in the description
MATCH_THRESHOLD = 0.4

# Product words shorter than this never match by containment
MIN_CONTAINMENT_LENGTH = 3

_PUNCTUATION = "/-,."

# product word -> description words that count as a hit
SYNONYMS: dict[str, frozenset[str]] = {
    "1-2": frozenset({"1", "2"}),
    "3": frozenset({"3", "three"}),
    "4": frozenset({"4", "four"}),
    "pers": frozenset({"people", "person"}),
}


def _clean_word(word: str) -> str:
    return word.strip(_PUNCTUATION)


def _words_hit(description_word: str, product_word: str) -> bool:
    if len(product_word) >= MIN_CONTAINMENT_LENGTH and (
        product_word in description_word or description_word in product_word
    ):
        return True
    return description_word in SYNONYMS.get(product_word, ())


def fuzzy_match(description: str | None, product_name: str | None) -> bool:
    """
    Decide whether a transaction description refers to a product.

    Both strings are lowercased and trimmed. Equality or containment in
    either direction is a match. Otherwise each description word scores at
    most one hit against the product words, and the description matches
    when the hits reach 40% of the product's word count.

    Examples:
        fuzzy_match("CABIN BOOKING", "Cabin") -> True
        fuzzy_match("tent 2 pers", "Caravan/motorhome/tent 1-2 pers") -> True
        fuzzy_match("laundry service", "Washing machine") -> False

    Args:
        description: Transaction description
        product_name: Product name from the price list

    Returns:
        True if the description matches the product
    """
    desc = (description or "").strip().lower()
    prod = (product_name or "").strip().lower()

    if not desc or not prod:
        return False

    if desc == prod or prod in desc or desc in prod:
        return True

    product_words = [_clean_word(w) for w in prod.split()]
    if not product_words:
        return False

    hits = 0
    for raw_word in desc.split():
        description_word = _clean_word(raw_word)
        if not description_word:
            continue
        if any(_words_hit(description_word, pw) for pw in product_words):
            hits += 1

    return float(hits) >= len(product_words) * MATCH_THRESHOLD
