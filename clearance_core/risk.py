"""
Rule-based risk classification for a scored candidate mark.

The classifier is an ordered cascade of guard/result rules, evaluated top to
bottom with the first match winning. The order mirrors examiner practice:
inactive marks are gated first, cross-class comparisons next, and marks in an
overlapping Nice class get the strictest and most detailed scrutiny.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List

from clearance_core.models import (
    MarkStatus,
    RiskAssessment,
    RiskFactor,
    RiskInput,
    RiskLevel,
)

logger = logging.getLogger(__name__)

HIGH_FACTOR_THRESHOLD = 60


def _always(level: RiskLevel) -> Callable[[RiskInput], RiskLevel]:
    return lambda _: level


def _high_if_live(risk_input: RiskInput) -> RiskLevel:
    return RiskLevel.HIGH if risk_input.status == MarkStatus.LIVE else RiskLevel.MEDIUM


def _signals(risk_input: RiskInput) -> List[int]:
    b = risk_input.breakdown
    return [b.exact, b.visual, b.phonetic, b.fuzzy]


def high_factor_count(risk_input: RiskInput) -> int:
    """Number of signals (exact, visual, phonetic, fuzzy) at or above 60."""
    return sum(1 for value in _signals(risk_input) if value >= HIGH_FACTOR_THRESHOLD)


def strongest_signal(risk_input: RiskInput) -> int:
    return max(_signals(risk_input))


@dataclass(frozen=True)
class RiskRule:
    """
    One step of the cascade.

    Attributes:
        name: Stable identifier, reported on the assessment for auditing.
        factor: The signal category that decides the outcome when this rule fires.
        guard: Predicate over the risk input; the first rule whose guard holds wins.
        level: Produces the risk level once the guard holds.
    """

    name: str
    factor: RiskFactor
    guard: Callable[[RiskInput], bool]
    level: Callable[[RiskInput], RiskLevel]


def _inactive(i: RiskInput) -> bool:
    return i.status.is_inactive


def _cross_class(i: RiskInput) -> bool:
    return not i.status.is_inactive and not i.same_class


def _same_class(i: RiskInput) -> bool:
    return not i.status.is_inactive and i.same_class


RISK_RULES: List[RiskRule] = [
    # Dead or abandoned marks only matter when they are (near) identical
    RiskRule("inactive-identical", RiskFactor.EXACT_TEXT,
             lambda i: _inactive(i) and i.breakdown.exact >= 95, _always(RiskLevel.MEDIUM)),
    RiskRule("inactive", RiskFactor.MULTI_FACTOR,
             _inactive, _always(RiskLevel.LOW)),

    # No class overlap
    RiskRule("cross-class-exact-high", RiskFactor.EXACT_TEXT,
             lambda i: _cross_class(i) and i.breakdown.exact >= 90, _always(RiskLevel.HIGH)),
    RiskRule("cross-class-exact", RiskFactor.EXACT_TEXT,
             lambda i: _cross_class(i) and i.breakdown.exact >= 75, _always(RiskLevel.MEDIUM)),
    RiskRule("cross-class-sound", RiskFactor.SOUND,
             lambda i: _cross_class(i) and i.breakdown.phonetic >= 90 and i.breakdown.visual >= 70,
             _always(RiskLevel.MEDIUM)),
    RiskRule("cross-class", RiskFactor.MULTI_FACTOR,
             _cross_class, _always(RiskLevel.LOW)),

    # Overlapping classes
    RiskRule("same-class-exact-high", RiskFactor.EXACT_TEXT,
             lambda i: _same_class(i) and i.breakdown.exact >= 85, _always(RiskLevel.HIGH)),
    RiskRule("same-class-exact-strong", RiskFactor.EXACT_TEXT,
             lambda i: _same_class(i) and i.breakdown.exact >= 65, _high_if_live),
    RiskRule("same-class-exact", RiskFactor.EXACT_TEXT,
             lambda i: _same_class(i) and i.breakdown.exact >= 50, _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-sound-strong", RiskFactor.SOUND,
             lambda i: _same_class(i) and i.breakdown.phonetic >= 90 and i.breakdown.visual >= 60,
             _high_if_live),
    RiskRule("same-class-sound-visual", RiskFactor.SOUND,
             lambda i: _same_class(i) and i.breakdown.phonetic >= 85 and i.breakdown.visual >= 50,
             _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-sound", RiskFactor.SOUND,
             lambda i: _same_class(i) and i.breakdown.phonetic >= 80, _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-visual-strong", RiskFactor.VISUAL,
             lambda i: _same_class(i) and i.breakdown.visual >= 85 and i.breakdown.phonetic >= 50,
             _high_if_live),
    RiskRule("same-class-visual", RiskFactor.VISUAL,
             lambda i: _same_class(i) and i.breakdown.visual >= 75, _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-many-factors", RiskFactor.MULTI_FACTOR,
             lambda i: _same_class(i) and high_factor_count(i) >= 3, _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-two-factors", RiskFactor.MULTI_FACTOR,
             lambda i: _same_class(i) and high_factor_count(i) >= 2 and strongest_signal(i) >= 70,
             _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-strong-signal", RiskFactor.MULTI_FACTOR,
             lambda i: _same_class(i) and strongest_signal(i) >= 75, _always(RiskLevel.MEDIUM)),
    RiskRule("same-class-fuzzy", RiskFactor.MULTI_FACTOR,
             lambda i: _same_class(i) and i.breakdown.fuzzy >= 85
             and (i.breakdown.visual >= 55 or i.breakdown.phonetic >= 55),
             _always(RiskLevel.MEDIUM)),
    RiskRule("same-class", RiskFactor.MULTI_FACTOR,
             _same_class, _always(RiskLevel.LOW)),
]

_ADVICE = {
    RiskLevel.HIGH: "Strong likelihood of rejection.",
    RiskLevel.MEDIUM: "Proceed with caution.",
    RiskLevel.LOW: "Unlikely to block registration.",
}

_FACTOR_PHRASES = {
    RiskFactor.EXACT_TEXT: "decided by exact text match",
    RiskFactor.SOUND: "decided by sound-alike similarity",
    RiskFactor.VISUAL: "decided by visual similarity",
    RiskFactor.MULTI_FACTOR: "decided by multi-factor similarity",
}


def has_class_overlap(classes1: Iterable[int], classes2: Iterable[int]) -> bool:
    """Check if two sets of Nice classes share at least one class."""
    return not set(classes1).isdisjoint(classes2)


def explain(risk_input: RiskInput, level: RiskLevel, factor: RiskFactor) -> str:
    """Build the audit explanation for an assessment from its inputs."""
    b = risk_input.breakdown
    relation = "same class" if risk_input.same_class else "different class"
    return (
        f"{level.value.upper()} RISK: {_FACTOR_PHRASES[factor]} "
        f"(overall {b.overall}%, exact {b.exact}, visual {b.visual}, sound {b.phonetic}, fuzzy {b.fuzzy}); "
        f"{risk_input.status.value} trademark in {relation}. {_ADVICE[level]}"
    )


def assess_risk(risk_input: RiskInput, rules: List[RiskRule] = RISK_RULES) -> RiskAssessment:
    """
    Classify a scored candidate by running the rule cascade.

    Args:
        risk_input: Similarity breakdown, class-overlap flag and mark status.
        rules: The cascade to evaluate, in order. Defaults to :data:`RISK_RULES`.

    Returns:
        RiskAssessment: Level, deciding factor, matched rule name and explanation.
    """
    for rule in rules:
        if rule.guard(risk_input):
            level = rule.level(risk_input)
            return RiskAssessment(
                level=level,
                factor=rule.factor,
                rule=rule.name,
                explanation=explain(risk_input, level, rule.factor),
            )

    # Only reachable with a custom rule list that lacks a catch-all
    logger.debug("No risk rule matched, defaulting to low", extra={"status": risk_input.status.value})
    return RiskAssessment(
        level=RiskLevel.LOW,
        factor=RiskFactor.MULTI_FACTOR,
        rule="default",
        explanation=explain(risk_input, RiskLevel.LOW, RiskFactor.MULTI_FACTOR),
    )
