"""
Claim workflow state.

There is no claim database. Everything a later phase needs travels inside
a signed session token as a ``ClaimState``. Each phase mints a new token
from a new state. States are never mutated in place.

Phase transitions:

    claimant  --for_endorser()-->  endorser  --with_submission()-->  endorser (complete)

An endorser state carries every claimant field forward unchanged. A
transition only adds the role change, the endorser identity and the
endorsement content.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClaimRole(str, Enum):
    """Capability carried by a token."""

    CLAIMANT = "claimant"
    ENDORSER = "endorser"


class ClaimStateError(ValueError):
    """Raised on an invalid phase transition."""


class ClaimState(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    role: ClaimRole
    claim_id: str = Field(..., min_length=1)
    tenant: str = Field(..., min_length=1)

    skill_code: str
    skill_name: str
    skill_description: str

    claimant_name: str
    claimant_email: str

    # Endorser phase
    claimant_narrative: Optional[str] = None
    endorser_name: Optional[str] = None
    endorser_email: Optional[str] = None

    # Completion
    endorsement_text: Optional[str] = None
    bona_fides: Optional[str] = None
    evidence_urls: List[str] = Field(default_factory=list)
    signature: Optional[str] = None

    nonce: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return (
            self.role == ClaimRole.ENDORSER
            and self.endorsement_text is not None
            and self.bona_fides is not None
            and self.signature is not None
        )

    def for_endorser(
        self,
        *,
        claimant_narrative: str,
        endorser_name: str,
        endorser_email: str,
    ) -> "ClaimState":
        if self.role != ClaimRole.CLAIMANT:
            raise ClaimStateError("only a claimant state can invite an endorser")

        return self.model_copy(
            update={
                "role": ClaimRole.ENDORSER,
                "claimant_narrative": claimant_narrative,
                "endorser_name": endorser_name,
                "endorser_email": endorser_email,
                "nonce": None,
                "issued_at": None,
                "expires_at": None,
            }
        )

    def with_submission(
        self,
        *,
        endorsement_text: str,
        bona_fides: str,
        signature: str,
        evidence_urls: Optional[List[str]] = None,
    ) -> "ClaimState":
        if self.role != ClaimRole.ENDORSER:
            raise ClaimStateError("only an endorser state can be completed")

        return self.model_copy(
            update={
                "endorsement_text": endorsement_text,
                "bona_fides": bona_fides,
                "signature": signature,
                "evidence_urls": list(evidence_urls or []),
                "nonce": None,
                "issued_at": None,
                "expires_at": None,
            }
        )

    def to_claims(self) -> Dict[str, Any]:
        """Private token claims. Registered claims are added by the minter."""
        claims = self.model_dump(
            mode="json",
            exclude={"issued_at", "expires_at"},
            exclude_none=True,
        )
        if not claims.get("evidence_urls"):
            claims.pop("evidence_urls", None)
        return claims
