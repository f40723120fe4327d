"""
Proof-of-content bundle embedded into signed certificates.

The bundle is written into the PDF document information dictionary under
vendor-qualified keys (``/SkillsAware-<Slot>``). Key names are a frozen
contract: certificates issued years ago must still verify.

Two independent anchors live in the bundle:

- ``content_hash``: SHA-256 over the canonical credential fields, with the
  fields themselves stored alongside as ``credential_data`` so a verifier can
  recompute the hash and then compare each field against the visible page
  text.
- ``signature``: HMAC over the identity fields and ``timestamp``. This is
  the older anchor and the only one present on legacy certificates.
"""

from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from endorsement.app.schemas.claim_state import ClaimState
from endorsement.app.utils.hashing import (
    canonical_credential_json,
    compute_content_hash,
)


# ---------------------------------------------------------------------------
# Frozen constants
# ---------------------------------------------------------------------------

CERTIFICATE_CREATOR = "SkillsAware OBv3 Endorsement System"
CERTIFICATE_PRODUCER = "SkillsAware Credential Signer"
PROOF_VERSION = "1.0"
METADATA_KEY_PREFIX = "/SkillsAware-"


class ProofSlot(str, Enum):
    """Metadata slot names, without the vendor prefix."""

    SIGNATURE = "Signature"
    TIMESTAMP = "Timestamp"
    CLAIM_ID = "ClaimID"
    VERSION = "Version"
    ISSUER = "Issuer"
    CONTENT_HASH = "ContentHash"
    JWT = "JWT"
    CREDENTIAL_DATA = "CredentialData"

    @property
    def key(self) -> str:
        return f"{METADATA_KEY_PREFIX}{self.value}"


# ---------------------------------------------------------------------------
# Credential fields (hash input)
# ---------------------------------------------------------------------------

class CredentialFields(BaseModel):
    """The ten fields covered by the content hash."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    skill_name: str = Field(..., alias="skillName")
    skill_code: str = Field(..., alias="skillCode")
    skill_description: str = Field(..., alias="skillDescription")
    claimant_name: str = Field(..., alias="claimantName")
    narrative: str
    endorser_name: str = Field(..., alias="endorserName")
    endorsement_text: str = Field(..., alias="endorsementText")
    bona_fides: str = Field(..., alias="bonaFides")
    signature: str
    evidence: List[str] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: ClaimState) -> "CredentialFields":
        if not state.is_complete:
            raise ValueError("credential fields require a completed claim state")

        return cls(
            skill_name=state.skill_name,
            skill_code=state.skill_code,
            skill_description=state.skill_description,
            claimant_name=state.claimant_name,
            narrative=state.claimant_narrative or "",
            endorser_name=state.endorser_name or "",
            endorsement_text=state.endorsement_text,
            bona_fides=state.bona_fides,
            signature=state.signature,
            evidence=list(state.evidence_urls),
        )

    def canonical_json(self) -> str:
        return canonical_credential_json(self.model_dump(by_alias=True))

    def content_hash(self) -> str:
        return compute_content_hash(self.canonical_json())


# ---------------------------------------------------------------------------
# Proof bundle
# ---------------------------------------------------------------------------

_PROOF_SLOTS = {
    "signature": ProofSlot.SIGNATURE,
    "timestamp": ProofSlot.TIMESTAMP,
    "claim_id": ProofSlot.CLAIM_ID,
    "version": ProofSlot.VERSION,
    "issuer_name": ProofSlot.ISSUER,
    "content_hash": ProofSlot.CONTENT_HASH,
    "credential_data": ProofSlot.CREDENTIAL_DATA,
    "legacy_token": ProofSlot.JWT,
}


class ProofBundle(BaseModel):
    """
    Typed view of the embedded proof.

    Every slot is optional when reading: a verifier must be able to describe
    documents that carry only part of the bundle (legacy or tampered).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    signature: Optional[str] = None
    timestamp: Optional[str] = None
    claim_id: Optional[str] = None
    version: Optional[str] = None
    issuer_name: Optional[str] = None
    content_hash: Optional[str] = None
    credential_data: Optional[str] = None
    legacy_token: Optional[str] = None

    @property
    def has_identity_signature(self) -> bool:
        return bool(self.signature and self.timestamp)

    @property
    def has_content_proof(self) -> bool:
        return bool(self.credential_data and self.content_hash)

    def to_docinfo(self) -> Dict[str, str]:
        """Map populated slots to their information dictionary keys."""
        info: Dict[str, str] = {}
        for attr, slot in _PROOF_SLOTS.items():
            value = getattr(self, attr)
            if value:
                info[slot.key] = value
        return info

    @classmethod
    def from_docinfo(cls, info: Mapping[str, str]) -> "ProofBundle":
        values = {}
        for attr, slot in _PROOF_SLOTS.items():
            value = info.get(slot.key)
            if value:
                values[attr] = value
        return cls(**values)
