"""
Verification result schema.

Results are produced fresh per verification call and never persisted.
A failed verification is a value, not an exception: callers always get an
outcome, a human-readable message and the list of fields that changed.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------

class VerificationOutcome(str, Enum):
    VALID = "valid"
    NOT_RECOGNIZED = "not_recognized"
    CREATOR_TAMPERED = "creator_tampered"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format"
    METADATA_TAMPERED = "metadata_tampered"
    CONTENT_TAMPERED = "content_tampered"
    TOKEN_INVALID = "token_invalid"
    SIGNATURE_MISSING = "signature_missing"
    SIGNATURE_MISMATCH = "signature_mismatch"


# Change record statuses, as shown to end users.
STATUS_MODIFIED = "modified"
STATUS_NOT_FOUND = "NOT FOUND IN EXPECTED LOCATION"
STATUS_TEXT_MODIFIED = "DESCRIPTION TEXT MODIFIED OR MISSING"
STATUS_SIGNATURE_SECTION_MISSING = "SIGNATURE SECTION NOT FOUND"
STATUS_SIGNATURE_MODIFIED = "SIGNATURE MODIFIED OR REMOVED"


def evidence_missing_status(count: int) -> str:
    return f"{count} EVIDENCE LINK(S) MISSING OR MODIFIED"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ChangeRecord(BaseModel):
    """One field whose visible or embedded value no longer matches the proof."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str
    original: str
    status: str
    current: Optional[str] = None


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    valid: bool
    outcome: VerificationOutcome
    message: str
    changes: List[ChangeRecord] = Field(default_factory=list)

    content_hash: Optional[str] = Field(None, alias="contentHash")
    claim_id: Optional[str] = Field(None, alias="claimId")
    version: Optional[str] = None
    timestamp: Optional[str] = None
    legacy: bool = False


class ClaimedDifference(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    field: str
    you_entered: str = Field(..., alias="youEntered")
    pdf_contains: str = Field(..., alias="pdfContains")


class ClaimedVerificationResult(BaseModel):
    """Outcome of checking user-supplied identity fields against a certificate."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    valid: bool
    outcome: VerificationOutcome
    message: str
    signature_match: bool = Field(False, alias="signatureMatch")
    timestamp: Optional[str] = None
    differences: List[ClaimedDifference] = Field(default_factory=list)
    hint: Optional[str] = None

    # Truncated to a prefix; the full values never leave the verifier.
    expected_signature: Optional[str] = Field(None, alias="expectedSignature")
    found_signature: Optional[str] = Field(None, alias="foundSignature")
