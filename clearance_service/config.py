"""
Runtime configuration for the clearance service.

Values come from ``CLEARANCE_*`` environment variables, optionally populated
from a ``.env`` file via python-dotenv. Anything unset falls back to the
defaults below.
"""

import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from clearance_core.pipeline import DEFAULT_MAX_RESULTS, MIN_SIMILARITY_SCORE

ENV_PREFIX = "CLEARANCE_"

TSDR_STATUS_URL = "https://tsdr.uspto.gov/statusxml"


class Settings(BaseModel):
    """
    Tunables for the search service.

    Attributes:
        min_score: Relevance floor for the match pipeline.
        max_results: Default cap on returned conflicts.
        pipeline_workers: Thread pool size for candidate scoring.
        verify_top_k: How many of the top conflicts are checked against TSDR.
        verification_concurrency: Maximum in-flight TSDR requests.
        verification_timeout_seconds: Per-request TSDR timeout.
        tsdr_base_url: TSDR status XML endpoint.
        cache_ttl_seconds: Lifetime of cached search results.
    """

    model_config = ConfigDict(frozen=True)

    min_score: int = Field(default=MIN_SIMILARITY_SCORE, ge=0, le=100)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1)
    pipeline_workers: int = Field(default=1, ge=1)
    verify_top_k: int = Field(default=10, ge=0)
    verification_concurrency: int = Field(default=5, ge=1)
    verification_timeout_seconds: float = Field(default=5.0, gt=0)
    tsdr_base_url: str = TSDR_STATUS_URL
    cache_ttl_seconds: int = Field(default=3600, ge=1)


def _from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name in Settings.model_fields:
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw.strip():
            values[name] = raw.strip()
    return values


def load_settings(environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Settings:
    """
    Build :class:`Settings` from the environment.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.
        dotenv: Whether to load a ``.env`` file into ``os.environ`` first.

    Returns:
        Settings: Validated settings. Raises pydantic ``ValidationError`` on
        malformed values such as ``CLEARANCE_MAX_RESULTS=abc``.
    """
    if dotenv:
        load_dotenv()
    return Settings.model_validate(_from_environ(os.environ if environ is None else environ))
