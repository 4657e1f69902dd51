"""
Single source of truth (SSoT) for all data models of the clearance engine.

This module defines the pydantic models shared by the scorer, the risk
classifier, the image hasher, the match pipeline, the service layer and the
API. All models are frozen value objects: they are created per request and
never mutated, only copied.
"""

import math
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import imagehash
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clearance_core.errors import InvalidQuery
from clearance_core.phonetic import soundex

# USPTO Trademark Status and Document Retrieval evidence link
TSDR_CASE_URL = "https://tsdr.uspto.gov/#caseNumber"

SIGNAL_WEIGHTS: Dict[str, float] = {
    "exact": 0.40,
    "visual": 0.30,
    "phonetic": 0.20,
    "fuzzy": 0.10,
}

NiceClass = Annotated[int, Field(ge=1, le=45)]
Score = Annotated[int, Field(ge=0, le=100)]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (``round(2.5) == 3``)."""
    return int(math.floor(value + 0.5))


def hex_to_image_hash(value: str) -> imagehash.ImageHash:
    """Parse a hex perceptual hash; the bits must form a square grid (16 characters for 8x8)."""
    side = math.isqrt(len(value) * 4)
    if not value or side * side != len(value) * 4:
        raise ValueError(f"hex hash of {len(value)} characters does not cover a square bit grid")
    return imagehash.hex_to_hash(value)


def weighted_overall(exact: float, visual: float, phonetic: float, fuzzy: float) -> int:
    """Weighted composite of the four similarity signals, rounded."""
    return round_half_up(
        exact * SIGNAL_WEIGHTS["exact"]
        + visual * SIGNAL_WEIGHTS["visual"]
        + phonetic * SIGNAL_WEIGHTS["phonetic"]
        + fuzzy * SIGNAL_WEIGHTS["fuzzy"]
    )


def normalize_mark_text(text: str) -> str:
    """Lowercase a mark and remove all whitespace."""
    return "".join(text.lower().split())


def build_cache_key(mark_text: str, classes: Iterable[int]) -> str:
    """
    Derive the cache key for a search.

    The key is the normalized mark text followed by the numerically sorted,
    comma-joined Nice classes, e.g. ``search:nikeair:9,25``.
    """
    joined = ",".join(str(c) for c in sorted(set(classes)))
    return f"search:{normalize_mark_text(mark_text)}:{joined}"


class MarkStatus(str, Enum):
    """Lifecycle status of a registered or applied-for mark."""

    LIVE = "live"
    DEAD = "dead"
    PENDING = "pending"
    ABANDONED = "abandoned"

    @property
    def is_inactive(self) -> bool:
        return self in (MarkStatus.DEAD, MarkStatus.ABANDONED)


class RiskLevel(str, Enum):
    """Discrete conflict risk level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK: Dict[RiskLevel, int] = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


class RiskFactor(str, Enum):
    """Category of the signal that decided a risk assessment."""

    EXACT_TEXT = "exact text"
    SOUND = "sound"
    VISUAL = "visual"
    MULTI_FACTOR = "multi-factor"


class MarkRecord(BaseModel):
    """
    An existing mark from the corpus, as handed over by the candidate source.

    Attributes:
        id: Repository identifier of the record.
        serial_id: Office serial/application number.
        text: Literal mark text. May be blank for malformed upstream rows.
        owner: Registrant name, if known.
        status: Current lifecycle status.
        filing_date: Filing date, if known.
        classes: Nice classes the mark is registered in.
        source_url: Where the record was obtained from.
        logo_image: Optional encoded logo image (PNG/JPEG/GIF/WebP). It is never
            serialized, so a record read back from JSON (a cached search
            result, for example) has no logo; compare such records with
            ``model_dump()``.
    """

    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    serial_id: str
    text: Optional[str] = None
    owner: Optional[str] = None
    status: MarkStatus = MarkStatus.LIVE
    filing_date: Optional[date] = None
    classes: FrozenSet[NiceClass] = Field(default_factory=frozenset)
    source_url: Optional[str] = None
    logo_image: Optional[bytes] = Field(default=None, exclude=True, repr=False)

    @property
    def tsdr_url(self) -> str:
        """Link to the USPTO TSDR case page for this serial number."""
        return f"{TSDR_CASE_URL}={self.serial_id}&caseSearchType=US_APPLICATION&caseType=DEFAULT"

    @property
    def is_active(self) -> bool:
        return self.status == MarkStatus.LIVE

    def has_class_overlap(self, classes: Iterable[int]) -> bool:
        return not self.classes.isdisjoint(classes)


class SimilarityBreakdown(BaseModel):
    """
    Per-signal similarity between a query mark and a candidate mark (0-100 each).

    ``overall`` is always the weighted composite of the four signals; the
    model refuses to be built otherwise. Use :meth:`from_signals` to build one.
    """

    model_config = ConfigDict(frozen=True)

    overall: Score
    exact: Score
    visual: Score
    phonetic: Score
    fuzzy: Score

    @model_validator(mode="after")
    def _check_overall(self) -> "SimilarityBreakdown":
        expected = weighted_overall(self.exact, self.visual, self.phonetic, self.fuzzy)
        if self.overall != expected:
            raise ValueError(f"overall must be {expected} for the given signals, got {self.overall}")
        return self

    @classmethod
    def from_signals(cls, exact: int, visual: int, phonetic: int, fuzzy: int) -> "SimilarityBreakdown":
        return cls(
            overall=weighted_overall(exact, visual, phonetic, fuzzy),
            exact=exact,
            visual=visual,
            phonetic=phonetic,
            fuzzy=fuzzy,
        )

    def signals(self) -> Dict[str, int]:
        """The four raw signals, without the composite."""
        return {
            "exact": self.exact,
            "visual": self.visual,
            "phonetic": self.phonetic,
            "fuzzy": self.fuzzy,
        }


class RiskInput(BaseModel):
    """Everything the risk classifier looks at for one candidate."""

    model_config = ConfigDict(frozen=True)

    breakdown: SimilarityBreakdown
    same_class: bool
    status: MarkStatus


class RiskAssessment(BaseModel):
    """Outcome of the risk cascade: the level, what decided it, and why."""

    model_config = ConfigDict(frozen=True)

    level: RiskLevel
    factor: RiskFactor
    rule: str = Field(..., description="Name of the cascade rule that matched.")
    explanation: str


class VerificationStatus(BaseModel):
    """Result of checking one serial number against the upstream status service."""

    model_config = ConfigDict(frozen=True)

    serial_id: str
    verified: bool = False
    status: Optional[str] = None
    verified_at: Optional[datetime] = None


class Conflict(BaseModel):
    """A candidate mark that cleared the relevance floor, annotated with risk."""

    model_config = ConfigDict(frozen=True)

    record: MarkRecord
    breakdown: SimilarityBreakdown
    risk: RiskAssessment
    verified: bool = False
    verified_status: Optional[str] = None
    verified_at: Optional[datetime] = None
    logo_similarity: Optional[Score] = None

    @property
    def is_high_risk(self) -> bool:
        return self.risk.level == RiskLevel.HIGH

    def with_verification(self, verification: VerificationStatus) -> "Conflict":
        """
        Copy of this conflict carrying the verification outcome.

        Scores and risk are left untouched; an unverified outcome returns the
        conflict unchanged.
        """
        if not verification.verified:
            return self
        return self.model_copy(
            update={
                "verified": True,
                "verified_status": verification.status or self.record.status.value,
                "verified_at": verification.verified_at,
            }
        )


class ImageFingerprint(BaseModel):
    """
    64-bit perceptual hash of an image plus its grayscale intensity histogram.

    Attributes:
        bits: The hash as a string of '0'/'1' characters (row-major 8x8 block).
        histogram: 256-bucket grayscale histogram captured from the same image.
    """

    model_config = ConfigDict(frozen=True)

    bits: str = Field(..., pattern=r"^[01]+$")
    histogram: Tuple[int, ...] = ()

    @field_validator("bits")
    @classmethod
    def _whole_nibbles(cls, value: str) -> str:
        if len(value) % 4:
            raise ValueError("fingerprint length must be a multiple of 4 bits")
        return value

    def to_image_hash(self) -> imagehash.ImageHash:
        return imagehash.ImageHash(np.array([bit == "1" for bit in self.bits], dtype=bool))

    def to_hex(self) -> str:
        """Hex form of the hash (16 characters for a 64-bit fingerprint)."""
        return str(self.to_image_hash())

    @classmethod
    def from_hex(cls, value: str, histogram: Iterable[int] = ()) -> "ImageFingerprint":
        """Restore a fingerprint from its hex form; no histogram unless one is given."""
        restored = hex_to_image_hash(value)
        bits = "".join("1" if bit else "0" for bit in restored.hash.flatten())
        return cls(bits=bits, histogram=tuple(histogram))


class SearchQuery(BaseModel):
    """
    A clearance request: the proposed mark and the Nice classes it will cover.

    Construction raises :class:`InvalidQuery` (never a pydantic
    ``ValidationError``) when the mark text is shorter than two characters
    after trimming, or the class set is empty or out of the 1-45 range.
    """

    model_config = ConfigDict(frozen=True)

    mark_text: str
    classes: FrozenSet[int]
    logo_image: Optional[bytes] = Field(default=None, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _validate_query(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        text = data.get("mark_text")
        if not isinstance(text, str) or len(text.strip()) < 2:
            raise InvalidQuery("Mark text must be at least 2 characters", context={"mark_text": text})

        raw_classes = data.get("classes")
        if not raw_classes:
            raise InvalidQuery("At least one Nice class must be specified")
        try:
            classes = frozenset(int(c) for c in raw_classes)
        except (TypeError, ValueError) as e:
            raise InvalidQuery("Nice classes must be integers", context={"classes": repr(raw_classes)}) from e

        out_of_range = sorted(c for c in classes if not 1 <= c <= 45)
        if out_of_range:
            raise InvalidQuery("Nice classes must be between 1 and 45", context={"invalid": out_of_range})

        return {**data, "mark_text": text.strip(), "classes": classes}

    @property
    def normalized_text(self) -> str:
        return normalize_mark_text(self.mark_text)

    @property
    def soundex_code(self) -> str:
        return soundex(self.mark_text)

    @property
    def cache_key(self) -> str:
        return build_cache_key(self.mark_text, self.classes)


class SearchSummary(BaseModel):
    """
    Counts per risk level and the overall verdict for a result set.

    A search result summarizes every conflict above the relevance floor, so
    ``total`` may exceed the number of conflicts returned.
    """

    model_config = ConfigDict(frozen=True)

    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    overall_risk: RiskLevel = RiskLevel.LOW
    verified_count: int = 0

    @classmethod
    def from_conflicts(cls, conflicts: List[Conflict]) -> "SearchSummary":
        high = sum(1 for c in conflicts if c.risk.level == RiskLevel.HIGH)
        medium = sum(1 for c in conflicts if c.risk.level == RiskLevel.MEDIUM)
        low = sum(1 for c in conflicts if c.risk.level == RiskLevel.LOW)

        # More than two medium conflicts weigh as much as a single high one
        if high > 0 or medium > 2:
            overall = RiskLevel.HIGH
        elif medium > 0:
            overall = RiskLevel.MEDIUM
        else:
            overall = RiskLevel.LOW

        return cls(
            total=len(conflicts),
            high=high,
            medium=medium,
            low=low,
            overall_risk=overall,
            verified_count=sum(1 for c in conflicts if c.verified),
        )


class SearchMetadata(BaseModel):
    """Bookkeeping about how a result was produced."""

    model_config = ConfigDict(frozen=True)

    searched_at: datetime
    duration_ms: float = 0.0
    sources: List[str] = Field(default_factory=list)
    cached: bool = False


class SearchResult(BaseModel):
    """Complete clearance result: ordered conflicts, summary and metadata."""

    model_config = ConfigDict(frozen=True)

    query_text: str
    classes: List[int]
    conflicts: List[Conflict]
    summary: SearchSummary
    metadata: SearchMetadata

    @property
    def high_risk_conflicts(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.is_high_risk]

    @property
    def verified_conflicts(self) -> List[Conflict]:
        return [c for c in self.conflicts if c.verified]

    @property
    def is_cached(self) -> bool:
        return self.metadata.cached
