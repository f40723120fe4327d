import functools
import logging
from typing import Annotated, Any, Dict, Optional

import anyio.to_thread
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from endorsement.app.api.deps import SettingsDep, get_verifier
from endorsement.app.schemas.api import VerifyPdfResponse
from endorsement.app.schemas.proof import ProofSlot
from endorsement.app.services.pdf_metadata import read_metadata
from endorsement.app.services.verification import TamperVerifier

logger = logging.getLogger("endorsement.api.verification")

router = APIRouter(prefix="/api/v1", tags=["Verification"])

# Not echoed back to the uploader.
_PRIVATE_SLOTS = {ProofSlot.JWT.value, ProofSlot.CREDENTIAL_DATA.value}


def _report_metadata(pdf_bytes: bytes) -> Dict[str, Any]:
    metadata = read_metadata(pdf_bytes)
    if metadata is None:
        return {}

    return {
        **metadata.descriptive(),
        "page_count": metadata.page_count,
        "custom_fields": {
            slot: value
            for slot, value in metadata.vendor_fields().items()
            if slot not in _PRIVATE_SLOTS
        },
    }


@router.post(
    "/verify-pdf",
    response_model=VerifyPdfResponse,
    summary="Verify an endorsement certificate for tampering",
)
async def verify_pdf(
    settings: SettingsDep,
    verifier: Annotated[TamperVerifier, Depends(get_verifier)],
    pdf: UploadFile = File(..., description="Certificate PDF to verify"),
    skill_code: Annotated[Optional[str], Form(alias="skillCode")] = None,
    claimant_name: Annotated[Optional[str], Form(alias="claimantName")] = None,
    endorser_name: Annotated[Optional[str], Form(alias="endorserName")] = None,
) -> VerifyPdfResponse:
    """
    Always runs the layered tamper check. When the uploader also supplies
    skill code, claimant name and endorser name, the identity signature is
    recomputed from those values as well.
    """
    if pdf.content_type != "application/pdf":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only application/pdf content is supported",
        )

    pdf_bytes = await pdf.read()

    if not pdf_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded PDF is empty",
        )

    if len(pdf_bytes) > settings.max_pdf_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"PDF exceeds maximum allowed size of "
                f"{settings.max_pdf_size_mb} MB"
            ),
        )

    basic = await anyio.to_thread.run_sync(verifier.verify, pdf_bytes)

    full = None
    if skill_code and claimant_name and endorser_name:
        full = await anyio.to_thread.run_sync(
            functools.partial(
                verifier.verify_claimed,
                pdf_bytes,
                skill_code=skill_code,
                claimant_name=claimant_name,
                endorser_name=endorser_name,
            )
        )

    logger.info(
        "verify_pdf_completed",
        extra={
            "upload_name": pdf.filename,
            "size": len(pdf_bytes),
            "outcome": basic.outcome.value,
            "claimed": full is not None,
        },
    )

    return VerifyPdfResponse(
        filename=pdf.filename,
        file_size=len(pdf_bytes),
        basic_verification=basic,
        full_verification=full,
        metadata=_report_metadata(pdf_bytes),
    )
