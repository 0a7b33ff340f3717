"""
Tests for the Instantly and Pipedrive HTTP clients against a mocked transport.
"""

import asyncio

import httpx

from backend.app.integrations.instantly import InstantlyClient, OutreachError
from backend.app.integrations.pipedrive import CrmError, PipedriveClient


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Instantly
# ---------------------------------------------------------------------------

def test_create_lead_success():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"id": "lead-42", "email": "eva@kwekerij.nl"})

    client = InstantlyClient(api_key="key-1", base_url="https://api.instantly.ai", http_client=mock_http(handler))
    result = asyncio.run(client.create_lead({"email": "eva@kwekerij.nl", "campaign": "c-1"}))

    assert result.success
    assert result.lead_id == "lead-42"
    assert not result.skipped_as_duplicate
    assert seen["url"] == "https://api.instantly.ai/api/v2/leads"
    assert seen["auth"] == "Bearer key-1"


def test_create_lead_skipped_duplicate():
    client = InstantlyClient(http_client=mock_http(lambda r: httpx.Response(200, json={"status": "skipped"})))

    result = asyncio.run(client.create_lead({"email": "eva@kwekerij.nl"}))

    assert result.success
    assert result.skipped_as_duplicate


def test_create_lead_http_error_is_returned_not_raised():
    client = InstantlyClient(http_client=mock_http(
        lambda r: httpx.Response(402, text="Lead limit reached for this workspace")
    ))

    result = asyncio.run(client.create_lead({"email": "eva@kwekerij.nl"}))

    assert not result.success
    assert result.error == "Instantly API error: 402 - Lead limit reached for this workspace"


def test_create_lead_network_error_is_returned():
    def handler(request):
        raise httpx.ConnectError("connection reset", request=request)

    result = asyncio.run(InstantlyClient(http_client=mock_http(handler)).create_lead({"email": "x@y.nl"}))

    assert not result.success
    assert "network" in result.error


def test_blocklist_matches_email_or_domain():
    def handler(request):
        assert request.url.params["search"] == "kwekerij.nl"
        return httpx.Response(200, json={"items": [{"bl_value": "kwekerij.nl"}]})

    client = InstantlyClient(http_client=mock_http(handler))

    assert asyncio.run(client.is_address_suppressed("Eva@Kwekerij.nl"))


def test_blocklist_error_raises():
    client = InstantlyClient(http_client=mock_http(lambda r: httpx.Response(500, text="oops")))

    try:
        asyncio.run(client.is_address_suppressed("eva@kwekerij.nl"))
    except OutreachError:
        pass
    else:
        raise AssertionError("expected OutreachError")


# ---------------------------------------------------------------------------
# Pipedrive
# ---------------------------------------------------------------------------

def test_search_organization_by_name():
    def handler(request):
        assert request.url.params["term"] == "Kwekerij Groen"
        assert request.url.params["api_token"] == "token-1"
        return httpx.Response(200, json={
            "success": True,
            "data": {"items": [{"result_score": 1.0, "item": {"id": 812, "name": "Kwekerij Groen B.V."}}]},
        })

    client = PipedriveClient(api_token="token-1", http_client=mock_http(handler))
    organizations = asyncio.run(client.search_organization_by_name("Kwekerij Groen"))

    assert [(o.id, o.name) for o in organizations] == [(812, "Kwekerij Groen B.V.")]


def test_organization_status_from_custom_field():
    client = PipedriveClient(api_token="token-1", http_client=mock_http(lambda r: httpx.Response(200, json={
        "data": {"id": 812, client.status_field_id: "303"},
    })))

    assert asyncio.run(client.get_organization_status(812)) == 303


def test_organization_not_found_has_no_status():
    client = PipedriveClient(api_token="token-1", http_client=mock_http(lambda r: httpx.Response(404)))

    assert asyncio.run(client.get_organization_status(1)) is None


def test_pipedrive_server_error_raises():
    client = PipedriveClient(api_token="token-1", http_client=mock_http(lambda r: httpx.Response(503, text="down")))

    try:
        asyncio.run(client.search_organization_by_name("Kwekerij Groen"))
    except CrmError as e:
        assert "503" in str(e)
    else:
        raise AssertionError("expected CrmError")
