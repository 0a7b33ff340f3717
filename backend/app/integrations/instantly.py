"""Instantly integration - Lead creation and blocklist lookups (API v2)"""
import logging
from typing import Any, Dict, Optional
import httpx

from backend.app.config import get_settings
from backend.app.models import EnrollmentResult

logger = logging.getLogger(__name__)


class OutreachError(Exception):
    """Instantly unreachable or returned an error"""


class InstantlyClient:
    """Thin async client over the Instantly v2 REST API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        settings = get_settings()
        self.api_key = api_key or settings.instantly_api_key
        self.base_url = f"{(base_url or settings.instantly_base_url).rstrip('/')}/api/v2"
        self.timeout = settings.instantly_timeout_seconds
        self._http = http_client

    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.base_url}{endpoint}"

        if self._http is not None:
            return await self._http.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=headers, **kwargs)

    async def create_lead(self, payload: Dict[str, Any]) -> EnrollmentResult:
        """Add a lead to a campaign.

        Never raises: HTTP and network failures come back as
        success=False with the error text, so the caller can classify them.
        """
        if not self.api_key:
            return EnrollmentResult(success=False, error="INSTANTLY_API_KEY not configured")

        try:
            response = await self._send("POST", "/leads", json=payload)
        except httpx.TimeoutException:
            return EnrollmentResult(success=False, error=f"Instantly timeout ({self.timeout}s)")
        except httpx.HTTPError as e:
            return EnrollmentResult(success=False, error=f"Instantly network error: {e}")

        if response.status_code >= 400:
            return EnrollmentResult(
                success=False,
                error=f"Instantly API error: {response.status_code} - {response.text[:300]}"
            )

        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}

        return self._parse_created_lead(body)

    @staticmethod
    def _parse_created_lead(body: Dict[str, Any]) -> EnrollmentResult:
        lead_id = body.get("id")
        skipped = bool(body.get("skipped")) or str(body.get("status", "")).lower() == "skipped"

        # skip_if_* flags: Instantly answers 200 without creating a new lead
        if skipped or not lead_id:
            return EnrollmentResult(success=True, lead_id=lead_id, skipped_as_duplicate=True)
        return EnrollmentResult(success=True, lead_id=str(lead_id))

    async def is_address_suppressed(self, email: str) -> bool:
        """Email or its domain is on the Instantly workspace blocklist"""
        if not self.api_key:
            raise OutreachError("INSTANTLY_API_KEY not configured")

        value = email.strip().lower()
        domain = value.rsplit("@", 1)[-1]

        # Searching by domain returns both the domain entry and address entries on it
        try:
            response = await self._send("GET", "/block-lists-entries", params={"search": domain, "limit": 100})
        except httpx.HTTPError as e:
            raise OutreachError(f"Instantly blocklist lookup failed: {e}") from e

        if response.status_code >= 400:
            raise OutreachError(f"Instantly API error: {response.status_code} - {response.text[:200]}")

        body = response.json() if response.text else {}
        entries = body.get("items") or body.get("data") or []
        blocked = {str(entry.get("bl_value", "")).strip().lower() for entry in entries}
        return value in blocked or domain in blocked
