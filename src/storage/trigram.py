# src/storage/trigram.py

"""Trigram similarity for the local fuzzy-match collaborator.

Follows the ``pg_trgm`` model: each alphanumeric word is lowercased and
padded with two leading spaces and one trailing space, split into
3-character windows, and two strings are compared by the Jaccard index
of their trigram sets.  "bodka" vs "vodka" scores 0.33, comfortably
above the primary threshold.
"""

import re

_WORD_RE = re.compile(r"[a-z0-9]+")


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def trigrams(text: str) -> frozenset[str]:
    """Return the padded trigram set of *text*."""
    grams: set[str] = set()
    for word in _words(text):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return frozenset(grams)


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the trigram sets of *a* and *b*."""
    left = trigrams(a)
    right = trigrams(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def word_similarity(query: str, text: str) -> float:
    """Mean best per-word similarity of *query* words against *text*.

    Lets "grey goose" match "Grey Goose Vodka 750ml" strongly even
    though the extra words dilute the whole-string score.
    """
    query_words = _words(query)
    text_words = _words(text)
    if not query_words or not text_words:
        return 0.0
    best = [
        max(similarity(qw, tw) for tw in text_words)
        for qw in query_words
    ]
    return sum(best) / len(best)


def relevance(query: str, name: str, brand: str | None = None) -> float:
    """Score a product against a query on its name and brand."""
    scores = [similarity(query, name), word_similarity(query, name)]
    if brand:
        scores.append(similarity(query, brand))
        scores.append(word_similarity(query, brand))
    return round(max(scores), 4)
