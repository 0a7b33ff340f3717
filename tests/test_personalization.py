"""
Tests for the personalization generator: backoff on 429/5xx, parsing and defaults.
"""

import asyncio
import json

import httpx

from backend.app.core.personalization import PersonalizationGenerator, parse_payload
from backend.app.core.retry import retry_with_backoff
from backend.app.integrations.openai_client import build_client

from fakes import RecordingSleep, make_candidate


def completion(content: str) -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "created": 1767225600,
        "model": "mistral-medium-latest",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }


def generator_with(responses, sleep):
    """Generator whose HTTP layer replays the given (status, body) pairs"""
    requests = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status, body = queue.pop(0)
        return httpx.Response(status, json=body)

    client = build_client(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return PersonalizationGenerator(client=client, max_attempts=3, base_delay=1.0, sleep=sleep), requests


ENRICHMENT = {
    "normalized_company": "Van der Berg Kwekerijen",
    "category": "tuinbouw",
    "sector": "glastuinbouw",
    "similar_companies": ["Kwekerij Groen", "Royal Tomaat"],
    "region": "Westland",
    "personalization": "In het Westland draait alles om de teelt.",
}


def test_two_rate_limits_then_success():
    sleep = RecordingSleep()
    rate_limited = {"error": {"message": "rate limited"}}
    generator, requests = generator_with(
        [(429, rate_limited), (429, rate_limited), (200, completion(json.dumps(ENRICHMENT)))],
        sleep,
    )

    payload = asyncio.run(generator.generate(make_candidate()))

    assert payload is not None
    assert payload.normalized_company == "Van der Berg Kwekerijen"
    assert len(requests) == 3
    assert sleep.delays == [1.0, 2.0]


def test_client_error_is_not_retried():
    sleep = RecordingSleep()
    generator, requests = generator_with([(400, {"error": {"message": "bad request"}})], sleep)

    assert asyncio.run(generator.generate(make_candidate())) is None
    assert len(requests) == 1
    assert sleep.delays == []


def test_exhausted_retries_return_none():
    sleep = RecordingSleep()
    generator, requests = generator_with([(503, {"error": {"message": "down"}})] * 3, sleep)

    assert asyncio.run(generator.generate(make_candidate())) is None
    assert len(requests) == 3
    assert sleep.delays == [1.0, 2.0]


def test_unparseable_body_returns_none():
    sleep = RecordingSleep()
    generator, _ = generator_with([(200, completion("Sorry, dat kan ik niet."))], sleep)

    assert asyncio.run(generator.generate(make_candidate())) is None


def test_defaults_fill_missing_fields():
    candidate = make_candidate(company_name="Bakkerij Jansen B.V.", platform_name="WestlandseBanen")

    payload = parse_payload(json.dumps({"category": "", "sector": None, "personalization": "Kort."}), candidate)

    assert payload.category == "overig"
    assert payload.sector == "overig"
    assert payload.normalized_company == "Bakkerij Jansen B.V."
    assert payload.region == "WestlandseBanen"
    assert payload.similar_companies == ""


def test_code_fenced_json_is_accepted():
    content = "```json\n" + json.dumps(ENRICHMENT) + "\n```"

    payload = parse_payload(content, make_candidate())

    assert payload.similar_companies == "Kwekerij Groen, Royal Tomaat"


def test_non_object_json_is_rejected():
    assert parse_payload("[1, 2, 3]", make_candidate()) is None


def test_retry_helper_stops_on_non_retryable():
    sleep = RecordingSleep()
    calls = []

    async def call():
        calls.append(1)
        raise ValueError("permanent")

    try:
        asyncio.run(retry_with_backoff(call, is_retryable=lambda e: False, sleep=sleep))
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")

    assert len(calls) == 1
    assert sleep.delays == []


def test_retry_helper_backs_off_then_succeeds():
    sleep = RecordingSleep()
    calls = []

    async def call():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    result = asyncio.run(retry_with_backoff(
        call, is_retryable=lambda e: isinstance(e, ConnectionError), base_delay=0.5, sleep=sleep
    ))

    assert result == "ok"
    assert sleep.delays == [0.5, 1.0]
