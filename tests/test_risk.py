# tests/test_risk.py
"""Tests for the rule-based risk classifier."""

import pytest

from clearance_core.models import MarkStatus, RiskFactor, RiskInput, RiskLevel, SimilarityBreakdown
from clearance_core.risk import RISK_RULES, RiskRule, assess_risk, has_class_overlap, high_factor_count


# --- Test Data Setup ---

def make_input(
    exact: int = 0,
    visual: int = 0,
    phonetic: int = 0,
    fuzzy: int = 0,
    same_class: bool = True,
    status: MarkStatus = MarkStatus.LIVE,
) -> RiskInput:
    """
    Helper function to create a risk input from raw signals.

    Args:
        exact, visual, phonetic, fuzzy: Similarity signals (0-100)
        same_class: Whether the marks share a Nice class
        status: Status of the existing mark

    Returns:
        A RiskInput with a consistent breakdown
    """
    return RiskInput(
        breakdown=SimilarityBreakdown.from_signals(exact=exact, visual=visual, phonetic=phonetic, fuzzy=fuzzy),
        same_class=same_class,
        status=status,
    )


# --- Tests ---

def test_cross_class_near_exact_is_high() -> None:
    """Test exact 90 / visual 80 in a different class on a live mark is high risk."""
    assessment = assess_risk(make_input(exact=90, visual=80, same_class=False))
    assert assessment.level == RiskLevel.HIGH
    assert assessment.factor == RiskFactor.EXACT_TEXT
    assert assessment.rule == "cross-class-exact-high"


def test_dead_mark_without_similarity_is_low() -> None:
    """Test all-zero signals in the same class on a dead mark is low risk."""
    assessment = assess_risk(make_input(status=MarkStatus.DEAD))
    assert assessment.level == RiskLevel.LOW
    assert assessment.rule == "inactive"


@pytest.mark.parametrize("status", [MarkStatus.DEAD, MarkStatus.ABANDONED])
def test_inactive_identical_mark_is_medium(status: MarkStatus) -> None:
    """Test that an identical inactive mark still deserves caution."""
    assessment = assess_risk(make_input(exact=100, visual=100, phonetic=100, fuzzy=100, status=status))
    assert assessment.level == RiskLevel.MEDIUM
    assert assessment.rule == "inactive-identical"


def test_inactive_gate_precedes_class_rules() -> None:
    """Test that strong non-exact similarity on a dead mark stays low."""
    assessment = assess_risk(make_input(exact=0, visual=95, phonetic=100, fuzzy=95, status=MarkStatus.DEAD))
    assert assessment.level == RiskLevel.LOW


def test_same_class_exact_is_high() -> None:
    """Test that an identical live mark in the same class is high risk."""
    assessment = assess_risk(make_input(exact=100, visual=100, phonetic=100, fuzzy=100))
    assert assessment.level == RiskLevel.HIGH
    assert assessment.rule == "same-class-exact-high"


@pytest.mark.parametrize(
    "status, expected_level",
    [
        (MarkStatus.LIVE, RiskLevel.HIGH),
        (MarkStatus.PENDING, RiskLevel.MEDIUM),
    ],
    ids=["live", "pending"]
)
def test_sound_alike_depends_on_status(status: MarkStatus, expected_level: RiskLevel) -> None:
    """Test that strong sound-alike matches are only high risk against live marks."""
    assessment = assess_risk(make_input(visual=80, phonetic=100, fuzzy=86, status=status))
    assert assessment.level == expected_level
    assert assessment.factor == RiskFactor.SOUND
    assert assessment.rule == "same-class-sound-strong"


@pytest.mark.parametrize(
    "visual, expected_level",
    [(70, RiskLevel.MEDIUM), (69, RiskLevel.LOW)],
)
def test_cross_class_sound_requires_visual_support(visual: int, expected_level: RiskLevel) -> None:
    """Test the cross-class sound rule needs phonetic >= 90 and visual >= 70."""
    assessment = assess_risk(make_input(visual=visual, phonetic=100, same_class=False))
    assert assessment.level == expected_level


def test_same_class_visual_rule() -> None:
    """Test a strong visual match without sound or exact match is medium risk."""
    assessment = assess_risk(make_input(visual=80, fuzzy=50))
    assert assessment.level == RiskLevel.MEDIUM
    assert assessment.factor == RiskFactor.VISUAL


def test_same_class_weak_signals_are_low() -> None:
    """Test that weak signals in the same class fall through to low."""
    assessment = assess_risk(make_input(visual=40, fuzzy=30))
    assert assessment.level == RiskLevel.LOW
    assert assessment.rule == "same-class"


def test_exact_similarity_never_lowers_risk() -> None:
    """Test that raising exact from 0 to 100 (others at 0) never lowers risk for a live same-class mark."""
    previous_rank = 0
    for exact in range(0, 101, 5):
        rank = assess_risk(make_input(exact=exact)).level.rank
        assert rank >= previous_rank, f"risk dropped at exact={exact}"
        previous_rank = rank
    assert previous_rank == RiskLevel.HIGH.rank


def test_explanation_mentions_level_and_factor() -> None:
    """Test that the explanation is derived from the assessment."""
    assessment = assess_risk(make_input(exact=90, visual=80, same_class=False))
    assert assessment.explanation.startswith("HIGH RISK: decided by exact text match")
    assert "different class" in assessment.explanation
    assert "live trademark" in assessment.explanation


def test_custom_rules_without_catch_all_default_to_low() -> None:
    """Test that an exhausted cascade yields low risk."""
    never = RiskRule("never", RiskFactor.VISUAL, lambda _: False, lambda _: RiskLevel.HIGH)
    assessment = assess_risk(make_input(exact=100), rules=[never])
    assert assessment.level == RiskLevel.LOW
    assert assessment.rule == "default"


def test_cascade_ends_with_catch_all_rules() -> None:
    """Test that every status/class combination is covered by the default cascade."""
    names = [rule.name for rule in RISK_RULES]
    assert names[-1] == "same-class"
    assert "cross-class" in names and "inactive" in names


def test_helpers() -> None:
    """Test class overlap and high-factor counting."""
    assert has_class_overlap({9, 25}, [25])
    assert not has_class_overlap({9}, {42})
    assert high_factor_count(make_input(exact=60, visual=59, phonetic=100, fuzzy=60)) == 3


LIVE, PENDING = MarkStatus.LIVE, MarkStatus.PENDING


@pytest.mark.parametrize(
    "exact, visual, phonetic, fuzzy, same_class, status, expected_level, expected_rule",
    [
        # exact text, same class
        (85, 0, 0, 0, True, LIVE, RiskLevel.HIGH, "same-class-exact-high"),
        (84, 0, 0, 0, True, LIVE, RiskLevel.HIGH, "same-class-exact-strong"),
        (65, 0, 0, 0, True, LIVE, RiskLevel.HIGH, "same-class-exact-strong"),
        (65, 0, 0, 0, True, PENDING, RiskLevel.MEDIUM, "same-class-exact-strong"),
        (64, 0, 0, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-exact"),
        (50, 0, 0, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-exact"),
        (49, 0, 0, 0, True, LIVE, RiskLevel.LOW, "same-class"),
        # sound, same class
        (0, 60, 90, 0, True, LIVE, RiskLevel.HIGH, "same-class-sound-strong"),
        (0, 59, 90, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-sound-visual"),
        (0, 50, 85, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-sound-visual"),
        (0, 49, 85, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-sound"),
        (0, 0, 80, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-sound"),
        (0, 0, 79, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-strong-signal"),
        (0, 0, 74, 0, True, LIVE, RiskLevel.LOW, "same-class"),
        # visual, same class
        (0, 85, 50, 0, True, LIVE, RiskLevel.HIGH, "same-class-visual-strong"),
        (0, 85, 50, 0, True, PENDING, RiskLevel.MEDIUM, "same-class-visual-strong"),
        (0, 85, 49, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-visual"),
        (0, 75, 0, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-visual"),
        (0, 74, 0, 0, True, LIVE, RiskLevel.LOW, "same-class"),
        # several moderate signals, same class
        (0, 60, 60, 60, True, LIVE, RiskLevel.MEDIUM, "same-class-many-factors"),
        (0, 60, 60, 59, True, LIVE, RiskLevel.LOW, "same-class"),
        (0, 70, 60, 0, True, LIVE, RiskLevel.MEDIUM, "same-class-two-factors"),
        (0, 69, 60, 0, True, LIVE, RiskLevel.LOW, "same-class"),
        (0, 0, 0, 75, True, LIVE, RiskLevel.MEDIUM, "same-class-strong-signal"),
        (0, 0, 0, 74, True, LIVE, RiskLevel.LOW, "same-class"),
        # fuzzy >= 85 always trips the strong-signal rule first
        (0, 55, 0, 85, True, LIVE, RiskLevel.MEDIUM, "same-class-strong-signal"),
        # different class
        (90, 0, 0, 0, False, LIVE, RiskLevel.HIGH, "cross-class-exact-high"),
        (89, 0, 0, 0, False, LIVE, RiskLevel.MEDIUM, "cross-class-exact"),
        (75, 0, 0, 0, False, LIVE, RiskLevel.MEDIUM, "cross-class-exact"),
        (74, 0, 0, 0, False, LIVE, RiskLevel.LOW, "cross-class"),
        (0, 70, 90, 0, False, LIVE, RiskLevel.MEDIUM, "cross-class-sound"),
        (0, 70, 89, 0, False, LIVE, RiskLevel.LOW, "cross-class"),
        # status gate
        (95, 0, 0, 0, True, MarkStatus.DEAD, RiskLevel.MEDIUM, "inactive-identical"),
        (94, 0, 0, 0, True, MarkStatus.ABANDONED, RiskLevel.LOW, "inactive"),
    ],
)
def test_cascade_thresholds(
    exact: int,
    visual: int,
    phonetic: int,
    fuzzy: int,
    same_class: bool,
    status: MarkStatus,
    expected_level: RiskLevel,
    expected_rule: str,
) -> None:
    """Test every cascade rule on both sides of its threshold."""
    assessment = assess_risk(make_input(exact, visual, phonetic, fuzzy, same_class=same_class, status=status))
    assert (assessment.level, assessment.rule) == (expected_level, expected_rule)


@pytest.mark.parametrize(
    "visual, phonetic, fuzzy, expected_rule",
    [
        (55, 0, 85, "same-class-fuzzy"),
        (0, 55, 85, "same-class-fuzzy"),
        (54, 54, 85, "same-class"),
        (55, 0, 84, "same-class"),
    ],
)
def test_fuzzy_rule_thresholds(visual: int, phonetic: int, fuzzy: int, expected_rule: str) -> None:
    """Test the fuzzy rule on its own, with the strong-signal rule that shadows it removed."""
    rules = [rule for rule in RISK_RULES if rule.name != "same-class-strong-signal"]
    assessment = assess_risk(make_input(visual=visual, phonetic=phonetic, fuzzy=fuzzy), rules=rules)
    assert assessment.rule == expected_rule
