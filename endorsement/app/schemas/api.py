"""
HTTP request and response models.

Request models validate user input at the boundary; nothing below the API
layer re-validates lengths or formats.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from endorsement.app.schemas.verification import (
    ClaimedVerificationResult,
    VerificationResult,
)


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateClaimRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1)
    skill_code: str = Field(..., min_length=1)
    skill_name: str = Field(..., min_length=1)
    skill_description: str = Field(..., min_length=1)
    claimant_name: str = Field(..., min_length=1)
    claimant_email: str = Field(..., pattern=EMAIL_PATTERN)


class EndorserLinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    claimant_narrative: str = Field(
        ...,
        min_length=10,
        description="Narrative must be at least 10 characters",
    )
    endorser_name: str = Field(..., min_length=1)
    endorser_email: str = Field(..., pattern=EMAIL_PATTERN)


class SubmitEndorsementRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    endorsement_text: str = Field(
        ...,
        min_length=10,
        description="Endorsement must be at least 10 characters",
    )
    bona_fides: str = Field(
        ...,
        min_length=5,
        description="Bona fides must be at least 5 characters",
    )
    evidence_urls: Optional[List[HttpUrl]] = None
    signature: str = Field(
        ...,
        min_length=2,
        description="Digital signature must be at least 2 characters",
    )

    def evidence(self) -> List[str]:
        return [str(url) for url in self.evidence_urls or []]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class CreateClaimResponse(BaseModel):
    claim_id: str
    claimant_link: str
    expires_at: str


class EndorserLinkResponse(BaseModel):
    endorser_link: str
    expires_at: str


class ArtifactKeys(BaseModel):
    obv3_json: str
    pdf: str


class InlineDownload(BaseModel):
    base64: str
    filename: str
    url: str


class Downloads(BaseModel):
    json_: InlineDownload = Field(..., alias="json")
    pdf: InlineDownload

    model_config = ConfigDict(populate_by_name=True)


class SubmitEndorsementResponse(BaseModel):
    success: bool = True
    claim_id: str
    artifacts: ArtifactKeys
    downloads: Downloads
    s3_uploaded: bool
    pdf_signed: bool
    webhook_queued: bool


class VerifyPdfResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: Optional[str] = None
    file_size: int = Field(..., alias="fileSize")
    basic_verification: VerificationResult = Field(..., alias="basicVerification")
    full_verification: Optional[ClaimedVerificationResult] = Field(
        None, alias="fullVerification"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WebhookTestResponse(BaseModel):
    success: bool
    message: str
    webhook_url: str
    error: Optional[str] = None
