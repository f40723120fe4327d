import base64
import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from endorsement.app.api.deps import (
    EndorserSession,
    RegistryDep,
    SettingsDep,
    get_issuer,
    require_claim,
    session_tenant,
)
from endorsement.app.schemas.api import (
    ArtifactKeys,
    Downloads,
    InlineDownload,
    SubmitEndorsementRequest,
    SubmitEndorsementResponse,
)
from endorsement.app.services import tokens
from endorsement.app.services.issuance import (
    JSON_CONTENT_TYPE,
    PDF_CONTENT_TYPE,
    TEX_CONTENT_TYPE,
    EndorsementIssuer,
)
from endorsement.app.services.storage import ARTIFACT_FILENAMES

logger = logging.getLogger("endorsement.api.endorsements")

router = APIRouter(prefix="/api/v1/endorsements", tags=["Endorsements"])

IssuerDep = Annotated[EndorsementIssuer, Depends(get_issuer)]


def _download_url(app_url: str, claim_id: str, artifact_type: str, token: str) -> str:
    return (
        f"{app_url.rstrip('/')}/api/v1/endorsements/{claim_id}"
        f"/download/{artifact_type}?token={token}"
    )


# =============================================================================
# POST /api/v1/endorsements/submit
# =============================================================================

@router.post(
    "/submit",
    response_model=SubmitEndorsementResponse,
    summary="Submit the endorsement and issue the credential artifacts",
)
async def submit_endorsement(
    body: SubmitEndorsementRequest,
    session: EndorserSession,
    settings: SettingsDep,
    registry: RegistryDep,
    issuer: IssuerDep,
) -> SubmitEndorsementResponse:
    if session.state.is_complete:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This endorsement has already been submitted",
        )

    tenant = session_tenant(session, registry)

    completed = session.state.with_submission(
        endorsement_text=body.endorsement_text,
        bona_fides=body.bona_fides,
        signature=body.signature,
        evidence_urls=body.evidence(),
    )

    result = await issuer.issue(completed, tenant=tenant, bearer_token=session.token)

    completion_token, _ = tokens.mint(
        completed,
        secret=settings.signing_secret.get_secret_value(),
        expiry_days=settings.token_expiry_days,
        issuer=settings.app_url,
    )

    claim_id = completed.claim_id
    artifacts = result.artifacts

    return SubmitEndorsementResponse(
        claim_id=claim_id,
        artifacts=ArtifactKeys(obv3_json=result.keys["json"], pdf=result.keys["pdf"]),
        downloads=Downloads(
            json=InlineDownload(
                base64=base64.b64encode(artifacts.credential_json.encode("utf-8")).decode("ascii"),
                filename=ARTIFACT_FILENAMES["json"],
                url=_download_url(settings.app_url, claim_id, "json", completion_token),
            ),
            pdf=InlineDownload(
                base64=base64.b64encode(artifacts.pdf_bytes).decode("ascii"),
                filename=artifacts.pdf_filename,
                url=_download_url(settings.app_url, claim_id, "pdf", completion_token),
            ),
        ),
        s3_uploaded=result.s3_uploaded,
        pdf_signed=artifacts.pdf_signed,
        webhook_queued=result.webhook_queued,
    )


# =============================================================================
# GET /api/v1/endorsements/{claim_id}/download/{artifact_type}
# =============================================================================

@router.get(
    "/{claim_id}/download/{artifact_type}",
    response_class=Response,
    summary="Re-issue an artifact for a completed endorsement",
    responses={
        200: {"content": {PDF_CONTENT_TYPE: {}, JSON_CONTENT_TYPE: {}, TEX_CONTENT_TYPE: {}}},
        403: {"description": "Token does not grant access to this artifact"},
    },
)
async def download_artifact(
    claim_id: str,
    artifact_type: Literal["json", "pdf"],
    session: EndorserSession,
    registry: RegistryDep,
    issuer: IssuerDep,
) -> Response:
    require_claim(session, claim_id)

    if not session.state.is_complete:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not carry a completed endorsement",
        )

    tenant = session_tenant(session, registry)
    artifacts = await issuer.build_artifacts(session.state, tenant=tenant)

    if artifact_type == "json":
        content = artifacts.credential_json.encode("utf-8")
        media_type = JSON_CONTENT_TYPE
        filename = ARTIFACT_FILENAMES["json"]
    else:
        content = artifacts.pdf_bytes
        media_type = artifacts.pdf_content_type
        filename = artifacts.pdf_filename

    logger.info(
        "artifact_downloaded",
        extra={"claim_id": claim_id, "artifact_type": artifact_type},
    )

    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": (
                f'attachment; filename="{filename}"'
            ),
            "Cache-Control": "no-store",
        },
    )
