"""
Artifact signer.

Embeds a proof-of-content bundle into a rendered certificate PDF.

Order of operations (ENFORCED):
1. Content hash computed from the credential fields as given, before any
   metadata is written. It is never derived from the rendered text.
2. Identity signature: HMAC over skill code, claimant name, endorser name
   and the issuance timestamp.
3. Proof bundle and descriptive metadata written into the information
   dictionary in a single save.

Failure policy:
- If embedding fails the signer returns the rendered bytes unmodified with
  ``signed=False`` and logs a warning. Issuance continues; the unsigned
  document is later reported as "not recognized" by the verifier, never as
  valid. Callers MUST surface the ``signed`` flag.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from endorsement.app.schemas.proof import (
    CERTIFICATE_CREATOR,
    CERTIFICATE_PRODUCER,
    PROOF_VERSION,
    CredentialFields,
    ProofBundle,
)
from endorsement.app.services.pdf_metadata import PdfMetadataError, write_metadata
from endorsement.app.utils.hashing import compute_identity_signature

logger = logging.getLogger("endorsement.signing")


def format_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True)
class SignedArtifact:
    pdf_bytes: bytes
    signed: bool
    proof: Optional[ProofBundle] = None


class ArtifactSigner:
    def __init__(self, *, secret: str, version: str = PROOF_VERSION):
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = secret
        self._version = version

    def build_proof(
        self,
        *,
        fields: CredentialFields,
        claim_id: str,
        issuer_name: str,
        timestamp: str,
        legacy_token: Optional[str] = None,
    ) -> ProofBundle:
        canonical = fields.canonical_json()
        content_hash = fields.content_hash()

        signature = compute_identity_signature(
            secret=self._secret,
            skill_code=fields.skill_code,
            claimant_name=fields.claimant_name,
            endorser_name=fields.endorser_name,
            timestamp=timestamp,
        )

        return ProofBundle(
            signature=signature,
            timestamp=timestamp,
            claim_id=claim_id,
            version=self._version,
            issuer_name=issuer_name,
            content_hash=content_hash,
            credential_data=canonical,
            legacy_token=legacy_token,
        )

    def sign(
        self,
        rendered: bytes,
        *,
        fields: CredentialFields,
        claim_id: str,
        issuer_name: str,
        legacy_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SignedArtifact:
        timestamp = format_timestamp(now or datetime.now(timezone.utc))

        proof = self.build_proof(
            fields=fields,
            claim_id=claim_id,
            issuer_name=issuer_name,
            timestamp=timestamp,
            legacy_token=legacy_token,
        )

        entries = {
            "/Title": f"Skill Endorsement Certificate - {fields.skill_name}",
            "/Author": issuer_name,
            "/Subject": (
                f"{fields.skill_name} ({fields.skill_code}) endorsement for "
                f"{fields.claimant_name} by {fields.endorser_name}"
            ),
            "/Keywords": (
                f"skill endorsement, {fields.skill_code}, "
                "open badges v3, verifiable credential"
            ),
            "/Creator": CERTIFICATE_CREATOR,
            "/Producer": CERTIFICATE_PRODUCER,
            **proof.to_docinfo(),
        }

        try:
            signed_bytes = write_metadata(rendered, entries)
        except PdfMetadataError as exc:
            logger.warning(
                "artifact_signing_degraded",
                extra={"claim_id": claim_id, "error": str(exc)},
            )
            return SignedArtifact(pdf_bytes=rendered, signed=False)

        logger.info(
            "artifact_signed",
            extra={
                "claim_id": claim_id,
                "content_hash": proof.content_hash,
                "version": proof.version,
            },
        )
        return SignedArtifact(pdf_bytes=signed_bytes, signed=True, proof=proof)
