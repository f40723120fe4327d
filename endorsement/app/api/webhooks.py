import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from endorsement.app.api.deps import get_api_tenant, get_dispatcher
from endorsement.app.schemas.api import WebhookTestResponse
from endorsement.app.schemas.webhook import WebhookArtifact, WebhookPayload
from endorsement.app.services.signing import format_timestamp
from endorsement.app.services.storage import artifact_key
from endorsement.app.services.webhook import WebhookDispatcher
from endorsement.app.tenants import TenantConfig

logger = logging.getLogger("endorsement.api.webhooks")

router = APIRouter(prefix="/api/v1/webhook", tags=["Webhooks"])


@router.post(
    "/test",
    response_model=WebhookTestResponse,
    summary="Send a single signed test event to the tenant webhook",
)
async def test_webhook(
    tenant: Annotated[TenantConfig, Depends(get_api_tenant)],
    dispatcher: Annotated[WebhookDispatcher, Depends(get_dispatcher)],
) -> WebhookTestResponse:
    if not tenant.webhook_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook URL or secret not configured for this tenant",
        )

    claim_id = f"{tenant.tenant_id}/test-{uuid.uuid4()}"
    payload = WebhookPayload(
        claim_id=claim_id,
        skill_code="TEST001",
        skill_name="Webhook Test Skill",
        claimant_name="Test Claimant",
        endorser_name="Test Endorser",
        artifacts=[
            WebhookArtifact(
                type="obv3-json",
                s3_key=artifact_key(tenant.s3_prefix, claim_id, "json"),
            ),
            WebhookArtifact(
                type="pdf",
                s3_key=artifact_key(tenant.s3_prefix, claim_id, "pdf"),
            ),
        ],
        timestamp=format_timestamp(datetime.now(timezone.utc)),
    )

    result = await dispatcher.send(
        tenant.webhook_url,
        payload,
        tenant.webhook_secret.get_secret_value(),
        max_attempts=1,
    )

    logger.info(
        "webhook_test_sent",
        extra={"tenant": tenant.tenant_id, "success": result.success},
    )

    return WebhookTestResponse(
        success=result.success,
        message=(
            "Test webhook delivered"
            if result.success
            else "Test webhook delivery failed"
        ),
        webhook_url=tenant.webhook_url,
        error=result.last_error,
    )
