from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookArtifact(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["obv3-json", "pdf"]
    s3_key: str
    s3_url: Optional[str] = None


class WebhookPayload(BaseModel):
    """
    Body of the ``claim.endorsed`` notification.

    Field order is the serialization order; receivers verify the HMAC over
    the exact bytes sent.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    event: str = "claim.endorsed"
    claim_id: str
    skill_code: str
    skill_name: str
    claimant_name: str
    endorser_name: str
    artifacts: List[WebhookArtifact] = Field(default_factory=list)
    timestamp: str

    @property
    def tenant(self) -> str:
        return self.claim_id.split("/")[0]


class DeliveryResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    attempts: int
    event_id: str
    status_code: Optional[int] = None
    last_error: Optional[str] = None
