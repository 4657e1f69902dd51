"""
Live status verification against the USPTO TSDR status XML service.

Verification is best effort: a timeout or upstream error for one serial
number yields an unverified status for that serial only and never fails the
search that asked for it.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Protocol, runtime_checkable

import httpx

from clearance_core.errors import VerificationError, VerificationTimeout, VerificationUnavailable
from clearance_core.models import VerificationStatus
from clearance_service.logger import info, warning
from clearance_service.config import TSDR_STATUS_URL

USER_AGENT = "Mozilla/5.0 (Trademark Search Tool)"

_STATUS_PATTERN = re.compile(
    r"<markCurrentStatusExternalDescriptionText>(.*?)</markCurrentStatusExternalDescriptionText>",
    re.DOTALL,
)


@runtime_checkable
class VerificationSource(Protocol):
    async def verify(self, serial_ids: Iterable[str]) -> Dict[str, VerificationStatus]:
        ...


def parse_status(xml: str) -> str:
    """Extract the external status description from a TSDR status document."""
    match = _STATUS_PATTERN.search(xml)
    return match.group(1).strip() if match else "Unknown"


class TsdrVerificationClient:
    """
    Checks the current status of marks by serial number.

    Usage:
        async with TsdrVerificationClient() as client:
            statuses = await client.verify(["97123456", "88000001"])
    """

    def __init__(
        self,
        base_url: str = TSDR_STATUS_URL,
        concurrency: int = 5,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: TSDR status XML endpoint; the serial is passed as ``sn``.
            concurrency: Maximum number of requests in flight.
            timeout_seconds: Per-serial timeout, covering connect and read.
            client: Optional preconfigured client (tests pass one with a mock transport).
        """
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.concurrency = max(1, concurrency)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=timeout_seconds,
        )

    async def __aenter__(self) -> "TsdrVerificationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_status(self, serial_id: str) -> str:
        """
        Fetch the current status text for one serial number.

        Raises:
            VerificationTimeout: If the request exceeds the timeout.
            VerificationUnavailable: On transport errors or a non-2xx response.
        """
        try:
            response = await asyncio.wait_for(
                self._client.get(self.base_url, params={"sn": serial_id}),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise VerificationTimeout(
                "TSDR request timed out", serial_id=serial_id,
                context={"timeout_seconds": self.timeout_seconds},
            ) from e
        except httpx.HTTPError as e:
            raise VerificationUnavailable(f"TSDR request failed: {e}", serial_id=serial_id) from e

        if not response.is_success:
            raise VerificationUnavailable(
                "TSDR answered with an error", serial_id=serial_id,
                context={"status_code": response.status_code},
            )
        return parse_status(response.text)

    async def verify_one(self, serial_id: str, semaphore: Optional[asyncio.Semaphore] = None) -> VerificationStatus:
        async with semaphore or asyncio.Semaphore(1):
            try:
                status = await self.fetch_status(serial_id)
            except VerificationError as e:
                warning(
                    "Status verification failed",
                    serial_id=serial_id,
                    error_type=type(e).__name__,
                    reason=e.message,
                )
                return VerificationStatus(serial_id=serial_id, verified=False)

        return VerificationStatus(
            serial_id=serial_id,
            verified=True,
            status=status,
            verified_at=datetime.now(timezone.utc),
        )

    async def verify(self, serial_ids: Iterable[str]) -> Dict[str, VerificationStatus]:
        """
        Verify a batch of serial numbers concurrently.

        Returns:
            Dict[str, VerificationStatus]: One entry per distinct serial number.
        """
        unique = list(dict.fromkeys(serial_ids))
        if not unique:
            return {}

        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(*(self.verify_one(s, semaphore) for s in unique))
        verified = sum(1 for r in results if r.verified)
        info("Verified marks against TSDR", requested=len(unique), verified=verified)
        return {r.serial_id: r for r in results}
