# tests/test_models.py
"""Tests for query validation and the result models."""

from datetime import datetime, timezone

import pytest

from clearance_core.errors import InvalidQuery
from clearance_core.models import (
    Conflict,
    MarkRecord,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    SearchQuery,
    SimilarityBreakdown,
    VerificationStatus,
    round_half_up,
)


def test_query_normalizes_input() -> None:
    """Test that mark text is trimmed and classes are collected into a set."""
    query = SearchQuery(mark_text="  Nike Air ", classes=[25, "9", 25])
    assert query.mark_text == "Nike Air"
    assert query.classes == frozenset({9, 25})
    assert query.normalized_text == "nikeair"
    assert query.soundex_code == "N260"
    assert query.cache_key == "search:nikeair:9,25"


@pytest.mark.parametrize(
    "mark_text, classes",
    [
        ("N", [25]),
        ("   ", [25]),
        ("  x  ", [25]),
        ("NIKE", []),
        ("NIKE", [0]),
        ("NIKE", [46]),
        ("NIKE", ["shoes"]),
    ],
    ids=["one_char", "blank", "one_char_padded", "no_classes", "class_zero", "class_46", "not_a_number"]
)
def test_invalid_query_is_rejected(mark_text: str, classes: list) -> None:
    """Test that bad queries raise InvalidQuery rather than a validation error."""
    with pytest.raises(InvalidQuery):
        SearchQuery(mark_text=mark_text, classes=classes)


def test_invalid_query_carries_context() -> None:
    """Test that out-of-range classes are reported in the error context."""
    with pytest.raises(InvalidQuery) as exc_info:
        SearchQuery(mark_text="NIKE", classes=[25, 50, 99])
    assert exc_info.value.context == {"invalid": [50, 99]}


@pytest.mark.parametrize("value, expected", [(2.5, 3), (52.6, 53), (39.5, 40), (0.49, 0), (-0.5, 0)])
def test_round_half_up(value: float, expected: int) -> None:
    """Test that halves round away from the even neighbour, upwards."""
    assert round_half_up(value) == expected


def test_record_tsdr_url() -> None:
    """Test the evidence link of a record."""
    record = MarkRecord(id=1, serial_id="97123456", text="NIKE", classes=[25])
    assert record.tsdr_url == (
        "https://tsdr.uspto.gov/#caseNumber=97123456&caseSearchType=US_APPLICATION&caseType=DEFAULT"
    )
    assert record.is_active
    assert record.has_class_overlap({25, 35})


def _conflict() -> Conflict:
    breakdown = SimilarityBreakdown.from_signals(exact=100, visual=100, phonetic=100, fuzzy=100)
    return Conflict(
        record=MarkRecord(id=1, serial_id="97123456", text="NIKE", classes=[25]),
        breakdown=breakdown,
        risk=RiskAssessment(level=RiskLevel.HIGH, factor=RiskFactor.EXACT_TEXT, rule="same-class-exact-high",
                            explanation="HIGH RISK"),
    )


def test_verification_updates_only_verification_fields() -> None:
    """Test that a verified status marks the conflict without touching scores or risk."""
    conflict = _conflict()
    verified_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    updated = conflict.with_verification(
        VerificationStatus(serial_id="97123456", verified=True, status="Registered", verified_at=verified_at)
    )
    assert updated.verified
    assert updated.verified_status == "Registered"
    assert updated.verified_at == verified_at
    assert updated.breakdown == conflict.breakdown
    assert updated.risk == conflict.risk


def test_failed_verification_leaves_conflict_unchanged() -> None:
    """Test that an unverified outcome keeps verified=False."""
    conflict = _conflict()
    assert conflict.with_verification(VerificationStatus(serial_id="97123456")) is conflict
