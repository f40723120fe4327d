"""
Signed webhook delivery.

Tenants are notified with a ``claim.endorsed`` event once a certificate
and its credential JSON are stored. Each body is signed with the tenant's
webhook secret:

    X-Signature: sha256=<hex HMAC-SHA256(secret, body)>

Delivery retries on a fixed escalating schedule (1 min, 5 min, 30 min,
6 h, 24 h). One ``send`` call is one event: the event id is reused across
its retries so receivers can deduplicate.

Delivery never runs inside a request. ``dispatch`` schedules ``send`` as a
background task owned by the dispatcher; tasks still pending at shutdown
are cancelled.
"""

import asyncio
import hmac
import logging
import uuid
from typing import Awaitable, Callable, Optional, Sequence, Set, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from endorsement.app.schemas.webhook import DeliveryResult, WebhookPayload
from endorsement.app.utils.hashing import compute_body_signature

logger = logging.getLogger("endorsement.webhook")


RETRY_SCHEDULE_SECONDS: Sequence[float] = (60, 300, 1800, 21600, 86400)
DEFAULT_MAX_ATTEMPTS = 5
SIGNATURE_PREFIX = "sha256="


class WebhookDeliveryError(RuntimeError):
    """
    Raised when a receiver answers with a non-2xx status.

    This exception is explicitly retryable.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


def serialize_payload(payload: WebhookPayload) -> str:
    """Stable compact JSON; field order follows the model definition."""
    return payload.model_dump_json()


def sign_body(body: str, secret: str) -> str:
    return SIGNATURE_PREFIX + compute_body_signature(secret=secret, body=body)


def verify_incoming_signature(body: Union[bytes, str], signature: str, secret: str) -> bool:
    """
    Constant-time check of a received ``X-Signature`` header.

    Accepts the bare hex digest or the ``sha256=`` prefixed form.
    """
    if not signature:
        return False

    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]

    try:
        received = bytes.fromhex(signature)
    except ValueError:
        return False

    expected = bytes.fromhex(compute_body_signature(secret=secret, body=body))
    if len(received) != len(expected):
        return False
    return hmac.compare_digest(received, expected)


class WebhookDispatcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        schedule: Sequence[float] = RETRY_SCHEDULE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not schedule:
            raise ValueError("retry schedule must not be empty")
        self._client = client
        self._schedule = tuple(schedule)
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def send(
        self,
        url: str,
        payload: WebhookPayload,
        secret: str,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> DeliveryResult:
        """
        Deliver ``payload`` with retries. Never raises for delivery failures.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        body = serialize_payload(payload)
        event_id = str(uuid.uuid4())
        headers = {
            "Content-Type": "application/json",
            "X-Signature": sign_body(body, secret),
            "X-Tenant": payload.tenant,
            "X-Event-Id": event_id,
        }

        attempts = 0
        status_code: Optional[int] = None

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_chain(*(wait_fixed(delay) for delay in self._schedule)),
                retry=retry_if_exception_type(
                    (WebhookDeliveryError, httpx.HTTPError)
                ),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    status_code = await self._post(url, body, headers, attempts)

        except (WebhookDeliveryError, httpx.HTTPError, httpx.InvalidURL) as exc:
            if isinstance(exc, WebhookDeliveryError):
                status_code = exc.status_code
            logger.warning(
                "webhook_delivery_failed",
                extra={
                    "event_id": event_id,
                    "claim_id": payload.claim_id,
                    "attempts": attempts,
                    "error": str(exc),
                },
            )
            return DeliveryResult(
                success=False,
                attempts=attempts,
                event_id=event_id,
                status_code=status_code,
                last_error=str(exc),
            )

        logger.info(
            "webhook_delivered",
            extra={
                "event_id": event_id,
                "claim_id": payload.claim_id,
                "attempts": attempts,
                "status_code": status_code,
            },
        )
        return DeliveryResult(
            success=True,
            attempts=attempts,
            event_id=event_id,
            status_code=status_code,
        )

    async def _post(
        self,
        url: str,
        body: str,
        headers: dict,
        attempt_number: int,
    ) -> int:
        response = await self._client.post(
            url,
            content=body.encode("utf-8"),
            headers=headers,
        )

        if response.is_success:
            return response.status_code

        logger.info(
            "webhook_attempt_rejected",
            extra={
                "event_id": headers["X-Event-Id"],
                "attempt": attempt_number,
                "status_code": response.status_code,
            },
        )
        raise WebhookDeliveryError(
            response.status_code,
            f"HTTP {response.status_code}: {response.reason_phrase}",
        )

    # ------------------------------------------------------------------
    # Background dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        url: str,
        payload: WebhookPayload,
        secret: str,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> asyncio.Task:
        """Schedule ``send`` without awaiting it. Requires a running loop."""
        task = asyncio.create_task(
            self.send(url, payload, secret, max_attempts=max_attempts),
            name=f"webhook:{payload.claim_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def aclose(self) -> None:
        """Cancel pending deliveries and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()

        if tasks:
            logger.warning(
                "webhook_deliveries_cancelled",
                extra={"count": len(tasks)},
            )
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
