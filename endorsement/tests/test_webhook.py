import asyncio
import json

import httpx
import pytest

from endorsement.app.schemas.webhook import WebhookArtifact, WebhookPayload
from endorsement.app.services.webhook import (
    RETRY_SCHEDULE_SECONDS,
    WebhookDispatcher,
    serialize_payload,
    sign_body,
    verify_incoming_signature,
)

pytestmark = pytest.mark.anyio

SECRET = "tenant-webhook-secret"
URL = "https://tenant.example.com/hooks/endorsements"


def payload() -> WebhookPayload:
    return WebhookPayload(
        claim_id="skillsaware/claim-1",
        skill_code="ICT403",
        skill_name="Database Design",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
        artifacts=[
            WebhookArtifact(type="obv3-json", s3_key="endorsements/claim-1/claim.obv3.json"),
            WebhookArtifact(type="pdf", s3_key="endorsements/claim-1/claim.pdf"),
        ],
        timestamp="2024-01-01T00:00:00.000Z",
    )


class Receiver:
    """Scripted webhook receiver; replies with the queued status codes."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def dispatcher_for(receiver, sleep):
    client = httpx.AsyncClient(transport=httpx.MockTransport(receiver))
    return client, WebhookDispatcher(client, sleep=sleep)


async def test_always_failing_receiver_exhausts_attempts_on_schedule():
    receiver = Receiver([500] * 10)
    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(receiver, sleep)

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET, max_attempts=5)

    assert result.success is False
    assert result.attempts == 5
    assert len(receiver.requests) == 5
    assert sleep.delays == [60, 300, 1800, 21600]
    assert "500" in result.last_error


async def test_success_on_second_attempt_stops_retrying():
    receiver = Receiver([503, 202])
    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(receiver, sleep)

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET)

    assert result.success is True
    assert result.attempts == 2
    assert result.status_code == 202
    assert len(receiver.requests) == 2
    assert sleep.delays == [60]


async def test_schedule_repeats_last_delay_beyond_five_attempts():
    receiver = Receiver([500] * 10)
    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(receiver, sleep)

    async with client:
        await dispatcher.send(URL, payload(), SECRET, max_attempts=7)

    assert sleep.delays == list(RETRY_SCHEDULE_SECONDS) + [RETRY_SCHEDULE_SECONDS[-1]]


async def test_single_attempt_never_sleeps():
    receiver = Receiver([500])
    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(receiver, sleep)

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET, max_attempts=1)

    assert result.success is False
    assert sleep.delays == []


async def test_transport_errors_are_retried():
    calls = []

    def flaky(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200)

    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(flaky, sleep)

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET)

    assert result.success is True
    assert result.attempts == 2


async def test_other_http_errors_are_retried_and_reported():
    calls = []

    def redirect_loop(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(redirect_loop, sleep)

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET, max_attempts=3)

    assert result.success is False
    assert result.attempts == 3
    assert len(calls) == 3
    assert result.status_code is None
    assert "redirects" in result.last_error


async def test_request_is_signed_and_event_id_is_stable_across_retries():
    receiver = Receiver([500, 500, 200])
    client, dispatcher = dispatcher_for(receiver, RecordingSleep())

    async with client:
        result = await dispatcher.send(URL, payload(), SECRET)

    first, *rest = receiver.requests
    body = first.content

    assert first.headers["content-type"] == "application/json"
    assert first.headers["x-tenant"] == "skillsaware"
    assert first.headers["x-signature"].startswith("sha256=")
    assert verify_incoming_signature(body, first.headers["x-signature"], SECRET)
    assert json.loads(body)["event"] == "claim.endorsed"
    assert body.decode() == serialize_payload(payload())

    assert all(r.headers["x-event-id"] == first.headers["x-event-id"] for r in rest)
    assert result.event_id == first.headers["x-event-id"]


async def test_each_send_is_a_new_event():
    receiver = Receiver([200, 200])
    client, dispatcher = dispatcher_for(receiver, RecordingSleep())

    async with client:
        await dispatcher.send(URL, payload(), SECRET)
        await dispatcher.send(URL, payload(), SECRET)

    first, second = receiver.requests
    assert first.headers["x-event-id"] != second.headers["x-event-id"]


async def test_dispatch_runs_in_background_and_is_cancelled_on_close():
    release = asyncio.Event()

    async def blocking_sleep(seconds: float) -> None:
        await release.wait()

    receiver = Receiver([500] * 5)
    client, dispatcher = dispatcher_for(receiver, blocking_sleep)

    async with client:
        task = dispatcher.dispatch(URL, payload(), SECRET)
        while not receiver.requests:
            await asyncio.sleep(0)

        assert dispatcher.pending == 1
        await dispatcher.aclose()

    assert task.cancelled()
    assert dispatcher.pending == 0


def test_incoming_signature_verification():
    body = b'{"event":"claim.endorsed"}'
    header = sign_body(body.decode(), SECRET)

    assert verify_incoming_signature(body, header, SECRET)
    assert verify_incoming_signature(body.decode(), header, SECRET)
    assert verify_incoming_signature(body, header[len("sha256="):], SECRET)
    assert not verify_incoming_signature(body + b" ", header, SECRET)
    assert not verify_incoming_signature(body, header, "other-secret")
    assert not verify_incoming_signature(body, "sha256=zz", SECRET)
    assert not verify_incoming_signature(body, "sha256=abcd", SECRET)
    assert not verify_incoming_signature(body, "", SECRET)


async def test_malformed_url_is_reported_without_retrying():
    receiver = Receiver([200])
    sleep = RecordingSleep()
    client, dispatcher = dispatcher_for(receiver, sleep)

    async with client:
        result = await dispatcher.send("https://tenant.example.com/hooks\x00", payload(), SECRET)

    assert result.success is False
    assert receiver.requests == []
    assert sleep.delays == []
