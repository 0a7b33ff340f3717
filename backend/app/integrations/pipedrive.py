"""Pipedrive integration - Organization lookup for customer protection"""
import logging
from typing import Any, Dict, List, Optional
import httpx

from backend.app.config import get_settings
from backend.app.models import CrmOrganization

logger = logging.getLogger(__name__)


class CrmError(Exception):
    """Pipedrive unreachable or returned an error"""


class PipedriveClient:
    """Thin async client over the Pipedrive v1 REST API"""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        settings = get_settings()
        self.api_token = api_token or settings.pipedrive_api_token
        self.base_url = (base_url or settings.pipedrive_base_url).rstrip("/")
        self.status_field_id = settings.pipedrive_status_field_id
        self.timeout = settings.pipedrive_timeout_seconds
        self._http = http_client

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_token:
            raise CrmError("PIPEDRIVE_API_TOKEN not configured")

        query = {**(params or {}), "api_token": self.api_token}
        url = f"{self.base_url}{endpoint}"

        try:
            if self._http is not None:
                response = await self._http.get(url, params=query)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=query)
        except httpx.TimeoutException as e:
            raise CrmError(f"Pipedrive timeout ({self.timeout}s)") from e
        except httpx.HTTPError as e:
            raise CrmError(f"Pipedrive request failed: {e}") from e

        if response.status_code == 404:
            return {}
        if response.status_code >= 400:
            raise CrmError(f"Pipedrive API error: {response.status_code} - {response.text[:200]}")

        return response.json() if response.text else {}

    async def search_organization_by_name(self, name: str) -> List[CrmOrganization]:
        """Organizations whose name matches; empty list when nothing is found"""
        if not name or not name.strip():
            return []

        body = await self._get("/organizations/search", {"term": name.strip(), "fields": "name"})
        items = (body.get("data") or {}).get("items") or []

        organizations = []
        for entry in items:
            item = entry.get("item") or entry
            if item.get("id"):
                organizations.append(CrmOrganization(id=int(item["id"]), name=item.get("name")))
        return organizations

    async def get_organization_status(self, org_id: int) -> Optional[int]:
        """Value of the "status prospect" custom field, None when unset or not found"""
        body = await self._get(f"/organizations/{org_id}")
        org = body.get("data") or {}
        value = org.get(self.status_field_id)
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Unexpected status value for org %s: %r", org_id, value)
            return None
