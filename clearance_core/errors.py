"""
Exception types raised by the clearance engine and its service layer.

Every error carries an optional ``context`` dict so callers (and the JSON
logger) can attach structured detail without parsing the message.
"""

from typing import Any, Dict, Optional


class ClearanceError(Exception):
    """Base class for all clearance errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InvalidQuery(ClearanceError):
    """Raised when a search query fails validation (mark text or Nice classes)."""


class UnsupportedImage(ClearanceError):
    """Raised when an image buffer does not carry a known image signature."""


class ComparisonLengthMismatch(ClearanceError):
    """Raised when two fingerprints or histograms of different length are compared."""


class VerificationError(ClearanceError):
    """Base class for upstream status verification failures."""

    def __init__(
        self,
        message: str,
        serial_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.serial_id = serial_id
        super().__init__(message, context)


class VerificationTimeout(VerificationError):
    """The verification call for a single serial number timed out."""


class VerificationUnavailable(VerificationError):
    """The verification service could not be reached or answered with an error."""


class SearchFailed(ClearanceError):
    """Raised when the candidate source fails and no result can be produced."""
