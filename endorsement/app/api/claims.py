import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from endorsement.app.api.deps import (
    ClaimantSession,
    SettingsDep,
    get_api_tenant,
    require_claim,
)
from endorsement.app.schemas.api import (
    CreateClaimRequest,
    CreateClaimResponse,
    EndorserLinkRequest,
    EndorserLinkResponse,
)
from endorsement.app.schemas.claim_state import ClaimRole, ClaimState
from endorsement.app.services import tokens
from endorsement.app.tenants import TenantConfig

logger = logging.getLogger("endorsement.api.claims")

router = APIRouter(prefix="/api/v1/claims", tags=["Claims"])


def _form_link(app_url: str, form: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/form/{form}?token={token}"


# =============================================================================
# POST /api/v1/claims
# =============================================================================

@router.post(
    "",
    response_model=CreateClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new claim and issue the claimant link",
)
async def create_claim(
    body: CreateClaimRequest,
    tenant: Annotated[TenantConfig, Depends(get_api_tenant)],
    settings: SettingsDep,
) -> CreateClaimResponse:
    if body.tenant_id != tenant.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key does not belong to this tenant",
        )

    state = ClaimState(
        role=ClaimRole.CLAIMANT,
        claim_id=str(uuid.uuid4()),
        tenant=tenant.tenant_id,
        skill_code=body.skill_code,
        skill_name=body.skill_name,
        skill_description=body.skill_description,
        claimant_name=body.claimant_name,
        claimant_email=body.claimant_email,
    )

    token, expires_at = tokens.mint(
        state,
        secret=settings.signing_secret.get_secret_value(),
        expiry_days=settings.token_expiry_days,
        issuer=settings.app_url,
    )

    logger.info(
        "claim_created",
        extra={"claim_id": state.claim_id, "tenant": tenant.tenant_id},
    )

    return CreateClaimResponse(
        claim_id=state.claim_id,
        claimant_link=_form_link(settings.app_url, "claimant", token),
        expires_at=expires_at.isoformat(),
    )


# =============================================================================
# POST /api/v1/claims/{claim_id}/endorser-link
# =============================================================================

@router.post(
    "/{claim_id}/endorser-link",
    response_model=EndorserLinkResponse,
    summary="Record the claimant narrative and issue the endorser link",
)
async def create_endorser_link(
    claim_id: str,
    body: EndorserLinkRequest,
    session: ClaimantSession,
    settings: SettingsDep,
) -> EndorserLinkResponse:
    require_claim(session, claim_id)

    state = session.state.for_endorser(
        claimant_narrative=body.claimant_narrative,
        endorser_name=body.endorser_name,
        endorser_email=body.endorser_email,
    )

    token, expires_at = tokens.mint(
        state,
        secret=settings.signing_secret.get_secret_value(),
        expiry_days=settings.token_expiry_days,
        issuer=settings.app_url,
    )

    logger.info("endorser_link_created", extra={"claim_id": claim_id})

    return EndorserLinkResponse(
        endorser_link=_form_link(settings.app_url, "endorser", token),
        expires_at=expires_at.isoformat(),
    )
