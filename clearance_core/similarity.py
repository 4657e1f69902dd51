"""
Core similarity calculation functions for trademark comparison.

This module scores a query mark against a candidate mark on four signals
(exact, visual, phonetic and fuzzy) and combines them into a weighted
composite. Everything here is pure and in-memory, so it can be called
thousands of times per search.
"""

from collections import Counter

import Levenshtein

from clearance_core import models
from clearance_core.models import round_half_up
from clearance_core.phonetic import sounds_alike


def exact_match(mark1: str, mark2: str) -> bool:
    """
    Check whether two marks are the same text, ignoring case and whitespace.

    Args:
        mark1: First trademark text
        mark2: Second trademark text

    Returns:
        bool: True if the normalized marks are equal
    """
    return models.normalize_mark_text(mark1) == models.normalize_mark_text(mark2)


def visual_similarity(mark1: str, mark2: str) -> int:
    """
    Calculate visual similarity from the Levenshtein edit distance.

    Args:
        mark1: First trademark text
        mark2: Second trademark text

    Returns:
        int: ``100 * (maxLen - distance) / maxLen`` rounded; 100 when both are empty
    """
    text1 = mark1.lower()
    text2 = mark2.lower()

    max_len = max(len(text1), len(text2))
    if max_len == 0:
        return 100

    distance = Levenshtein.distance(text1, text2)
    return round_half_up((max_len - distance) / max_len * 100)


def phonetic_similarity(mark1: str, mark2: str) -> int:
    """
    Calculate phonetic similarity using both Soundex and Metaphone.

    The signal is boolean: 100 when either encoding matches, 0 otherwise.
    """
    return 100 if sounds_alike(mark1, mark2) else 0


def _bigrams(text: str) -> Counter:
    return Counter(text[i:i + 2] for i in range(len(text) - 1))


def fuzzy_similarity(mark1: str, mark2: str) -> int:
    """
    Calculate fuzzy similarity with the Dice coefficient over character bigrams.

    Whitespace is removed and case ignored. Repeated bigrams count as many
    times as they occur in both strings.

    Args:
        mark1: First trademark text
        mark2: Second trademark text

    Returns:
        int: Similarity between 0 (no shared bigrams) and 100 (identical)
    """
    first = "".join(mark1.lower().split())
    second = "".join(mark2.lower().split())

    if first == second:
        return 100
    if len(first) < 2 or len(second) < 2:
        return 0

    first_bigrams = _bigrams(first)
    intersection = 0
    for bigram, count in _bigrams(second).items():
        intersection += min(count, first_bigrams.get(bigram, 0))

    dice = (2.0 * intersection) / (len(first) + len(second) - 2)
    return round_half_up(dice * 100)


def calculate_similarity(query: str, candidate: str) -> models.SimilarityBreakdown:
    """
    Calculate the full similarity breakdown between a query mark and a candidate.

    Args:
        query: The proposed mark
        candidate: An existing mark from the corpus

    Returns:
        SimilarityBreakdown: The four signals and their weighted composite
    """
    return models.SimilarityBreakdown.from_signals(
        exact=100 if exact_match(query, candidate) else 0,
        visual=visual_similarity(query, candidate),
        phonetic=phonetic_similarity(query, candidate),
        fuzzy=fuzzy_similarity(query, candidate),
    )
