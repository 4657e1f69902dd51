"""
FastAPI application for trademark clearance searches.

This module provides HTTP endpoints for scoring a proposed mark against a set
of candidate marks and for fingerprinting and comparing logo images.
"""

import base64
import binascii
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from clearance_core import image_hash
from clearance_core.errors import InvalidQuery, SearchFailed, UnsupportedImage
from clearance_core.models import MarkRecord, SearchQuery, SearchResult
from clearance_service.config import load_settings
from clearance_service.logger import exception, warning
from clearance_service.search_service import ClearanceSearchService, StaticCandidateSource

settings = load_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Trademark Clearance API",
    description="API for scoring proposed trademarks against existing marks",
    version="1.0.0"
)


class CandidatePayload(MarkRecord):
    """A candidate mark as posted to the API; the logo travels base64-encoded."""

    logo_base64: Optional[str] = Field(default=None, repr=False)


class SearchRequest(BaseModel):
    mark_text: str
    classes: List[int]
    candidates: List[CandidatePayload] = Field(default_factory=list)
    logo_base64: Optional[str] = Field(default=None, repr=False)
    include_verification: bool = False
    force_refresh: bool = False
    max_results: Optional[int] = Field(default=None, ge=1)


class ImagePayload(BaseModel):
    image_base64: str


class ImageHashResponse(BaseModel):
    hash: str


class ImageCompareRequest(BaseModel):
    image1_base64: str
    image2_base64: str


class ImageCompareResponse(BaseModel):
    similarity: int


def _decode_image(data: str) -> bytes:
    # Accept data URLs as well as bare base64
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image payload is not valid base64")


def _to_record(candidate: CandidatePayload) -> MarkRecord:
    logo = _decode_image(candidate.logo_base64) if candidate.logo_base64 else None
    fields = candidate.model_dump(exclude={"logo_base64", "logo_image"})
    return MarkRecord(**fields, logo_image=logo)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/search", response_model=SearchResult)
async def search(request: SearchRequest) -> SearchResult:
    """
    Score a proposed mark against the posted candidate marks.

    Args:
        request: The mark, its Nice classes and the candidates to compare against

    Returns:
        SearchResult: Conflicts ordered by risk, with a summary
    """
    try:
        query = SearchQuery(
            mark_text=request.mark_text,
            classes=request.classes,
            logo_image=_decode_image(request.logo_base64) if request.logo_base64 else None,
        )
    except InvalidQuery as e:
        warning("Rejected search query", context=e.context, reason=e.message)
        raise HTTPException(status_code=400, detail=e.message)

    service = ClearanceSearchService(
        StaticCandidateSource([_to_record(c) for c in request.candidates]),
        settings=settings,
        # candidates are not part of the cache key
        cache=None,
    )

    try:
        return await service.search(
            query,
            include_verification=request.include_verification,
            force_refresh=request.force_refresh,
            max_results=request.max_results,
        )
    except SearchFailed as e:
        raise HTTPException(status_code=502, detail=e.message)
    except Exception as e:
        exception("Search failed", exc=e, query=request.mark_text)
        raise HTTPException(
            status_code=500,
            detail=f"Error running clearance search: {str(e)}"
        )


@app.post("/images/hash", response_model=ImageHashResponse)
async def hash_logo(payload: ImagePayload) -> ImageHashResponse:
    """Perceptual hash of a logo image, as 16 hex characters."""
    try:
        return ImageHashResponse(hash=image_hash.hash_image(_decode_image(payload.image_base64)))
    except UnsupportedImage as e:
        raise HTTPException(status_code=415, detail=e.message)


@app.post("/images/compare", response_model=ImageCompareResponse)
async def compare_logos(payload: ImageCompareRequest) -> ImageCompareResponse:
    """Similarity of two logo images, 0-100."""
    try:
        similarity = image_hash.compare_images(
            _decode_image(payload.image1_base64),
            _decode_image(payload.image2_base64),
        )
    except UnsupportedImage as e:
        raise HTTPException(status_code=415, detail=e.message)
    return ImageCompareResponse(similarity=similarity)
