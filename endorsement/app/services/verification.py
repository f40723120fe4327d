"""
Tamper verifier.

Re-derives the proofs embedded in a certificate and cross-checks them
against the certificate's own visible text.

LAYERS (ORDERED, SHORT-CIRCUITING)
----------------------------------
0. Recognition         neither our creator nor any signature/timestamp
1. Creator tamper      proof present but Creator rewritten
2. Signature shape     64 lowercase hex chars plus a timestamp
3. Metadata integrity  recompute the content hash from the embedded fields
4. Content cross-check every embedded field against the visible text
5. Legacy token        documents without a content proof but with a token
6. Minimal legacy      shape-valid signature only, passes with a caveat

Each layer returns a ``VerificationResult`` to stop, or ``None`` to defer
to the next layer. The first decisive layer wins.

A partial content proof (hash without fields or fields without hash) is
treated as metadata tampering so that deleting one slot cannot downgrade a
current certificate to the weaker legacy path.

Both public entry points are pure reads over the supplied bytes.
"""

import hmac
import json
import logging
import re
from functools import cached_property
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from endorsement.app.schemas.proof import CERTIFICATE_CREATOR, ProofBundle
from endorsement.app.schemas.verification import (
    STATUS_MODIFIED,
    STATUS_NOT_FOUND,
    STATUS_SIGNATURE_MODIFIED,
    STATUS_SIGNATURE_SECTION_MISSING,
    STATUS_TEXT_MODIFIED,
    ChangeRecord,
    ClaimedDifference,
    ClaimedVerificationResult,
    VerificationOutcome,
    VerificationResult,
    evidence_missing_status,
)
from endorsement.app.services import tokens
from endorsement.app.services.pdf_metadata import DocumentMetadata, read_metadata
from endorsement.app.services.text_extraction import extract_visible_text
from endorsement.app.services.text_matching import (
    CLAIMANT_NAME,
    ENDORSER_NAME,
    SIGNATURE_SECTION,
    SKILL_CODE,
    SKILL_NAME,
    LabelAnchor,
    collapse_whitespace,
    fuzzy_present,
    section_contains,
    verbatim_present,
)
from endorsement.app.utils.hashing import (
    canonical_credential_json,
    compute_content_hash,
    compute_identity_signature,
)

logger = logging.getLogger("endorsement.verification")


SIGNATURE_PATTERN = re.compile(r"[0-9a-f]{64}")
ORIGINAL_PREVIEW_LENGTH = 100
SIGNATURE_PREVIEW_LENGTH = 16

IDENTITY_FIELDS: Sequence[Tuple[LabelAnchor, str]] = (
    (SKILL_NAME, "skillName"),
    (SKILL_CODE, "skillCode"),
    (CLAIMANT_NAME, "claimantName"),
    (ENDORSER_NAME, "endorserName"),
)

FREE_TEXT_FIELDS: Sequence[Tuple[str, str]] = (
    ("Skill Description", "skillDescription"),
    ("Claimant Narrative", "narrative"),
    ("Endorser Credentials (Bona Fides)", "bonaFides"),
    ("Endorsement Statement", "endorsementText"),
)


def _preview(value: str, length: int = ORIGINAL_PREVIEW_LENGTH) -> str:
    if len(value) <= length:
        return value
    return value[:length] + "..."


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class _Document:
    """Lazily parsed view of the bytes under verification."""

    def __init__(self, pdf_bytes: bytes):
        self.pdf_bytes = pdf_bytes
        self.credential_data: Dict[str, Any] = {}

    @cached_property
    def metadata(self) -> Optional[DocumentMetadata]:
        return read_metadata(self.pdf_bytes)

    @cached_property
    def proof(self) -> ProofBundle:
        if self.metadata is None:
            return ProofBundle()
        return ProofBundle.from_docinfo(self.metadata.info)

    @cached_property
    def text(self) -> str:
        return extract_visible_text(self.pdf_bytes)


class TamperVerifier:
    """
    Layered certificate verifier.

    ``secret`` is the server secret used both for identity signatures and
    for session tokens embedded in legacy certificates.
    """

    def __init__(self, *, secret: str):
        self._secret = secret

        self._layers: List[Callable[[_Document], Optional[VerificationResult]]] = [
            self._check_recognized,
            self._check_creator,
            self._check_signature_shape,
            self._check_metadata_integrity,
            self._check_content,
            self._check_legacy_token,
            self._accept_minimal_legacy,
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify(self, pdf_bytes: bytes) -> VerificationResult:
        document = _Document(pdf_bytes)

        for layer in self._layers:
            result = layer(document)
            if result is not None:
                logger.info(
                    "certificate_verified",
                    extra={
                        "layer": layer.__name__,
                        "outcome": result.outcome.value,
                        "changes": len(result.changes),
                        "claim_id": result.claim_id,
                    },
                )
                return result

        raise RuntimeError("verification layers exhausted without a decision")

    def verify_claimed(
        self,
        pdf_bytes: bytes,
        *,
        skill_code: str,
        claimant_name: str,
        endorser_name: str,
    ) -> ClaimedVerificationResult:
        """
        Check user-supplied identity fields against the embedded signature.

        The signature is recomputed from the supplied values and the
        embedded timestamp. On mismatch, each identity field is located in
        the visible text to tell the user which value differs.
        """
        document = _Document(pdf_bytes)

        if document.metadata is None:
            return ClaimedVerificationResult(
                valid=False,
                outcome=VerificationOutcome.NOT_RECOGNIZED,
                message="The uploaded file is not a readable PDF.",
            )

        proof = document.proof
        if not proof.has_identity_signature:
            return ClaimedVerificationResult(
                valid=False,
                outcome=VerificationOutcome.SIGNATURE_MISSING,
                message="No signature found in PDF.",
            )

        expected = compute_identity_signature(
            secret=self._secret,
            skill_code=skill_code,
            claimant_name=claimant_name,
            endorser_name=endorser_name,
            timestamp=proof.timestamp,
        )

        if hmac.compare_digest(
            expected.encode("utf-8"),
            proof.signature.encode("utf-8"),
        ):
            return ClaimedVerificationResult(
                valid=True,
                outcome=VerificationOutcome.VALID,
                message="Signature verified: the entered details match this certificate.",
                signature_match=True,
                timestamp=proof.timestamp,
            )

        entered = (
            (SKILL_CODE, skill_code),
            (CLAIMANT_NAME, claimant_name),
            (ENDORSER_NAME, endorser_name),
        )
        differences = []
        for anchor, value in entered:
            printed = anchor.locate(document.text)
            if printed and collapse_whitespace(printed) != collapse_whitespace(value):
                differences.append(
                    ClaimedDifference(
                        field=anchor.field,
                        you_entered=value,
                        pdf_contains=printed,
                    )
                )

        if differences:
            hint = (
                "The signature covers exact spelling and capitalisation. "
                "Check the listed fields against the certificate."
            )
        else:
            hint = (
                "The entered details match the visible text, but not the "
                "signature. The certificate may have been altered after issuance."
            )

        return ClaimedVerificationResult(
            valid=False,
            outcome=VerificationOutcome.SIGNATURE_MISMATCH,
            message="Signature mismatch: the entered details do not match this certificate.",
            signature_match=False,
            timestamp=proof.timestamp,
            differences=differences,
            hint=hint,
            expected_signature=_preview(expected, SIGNATURE_PREVIEW_LENGTH),
            found_signature=_preview(proof.signature, SIGNATURE_PREVIEW_LENGTH),
        )

    # ------------------------------------------------------------------
    # Layer 0: recognition
    # ------------------------------------------------------------------

    def _check_recognized(self, document: _Document) -> Optional[VerificationResult]:
        metadata = document.metadata
        if metadata is None:
            return self._fail(
                VerificationOutcome.NOT_RECOGNIZED,
                "This file is not a readable PDF certificate.",
            )

        proof = document.proof
        if metadata.creator != CERTIFICATE_CREATOR and not (
            proof.signature or proof.timestamp
        ):
            return self._fail(
                VerificationOutcome.NOT_RECOGNIZED,
                "This PDF was not issued by the SkillsAware endorsement system.",
            )
        return None

    # ------------------------------------------------------------------
    # Layer 1: creator tamper
    # ------------------------------------------------------------------

    def _check_creator(self, document: _Document) -> Optional[VerificationResult]:
        creator = document.metadata.creator
        if creator == CERTIFICATE_CREATOR:
            return None

        return self._fail(
            VerificationOutcome.CREATOR_TAMPERED,
            "The PDF creator field has been modified after issuance.",
            changes=[
                ChangeRecord(
                    field="PDF Creator",
                    original=CERTIFICATE_CREATOR,
                    status=STATUS_MODIFIED,
                    current=creator or "Unknown",
                )
            ],
            document=document,
        )

    # ------------------------------------------------------------------
    # Layer 2: signature shape
    # ------------------------------------------------------------------

    def _check_signature_shape(self, document: _Document) -> Optional[VerificationResult]:
        proof = document.proof

        if not proof.signature:
            message = "Missing signature: this certificate carries no embedded signature."
        elif not proof.timestamp:
            message = "Missing timestamp: the embedded signature cannot be anchored."
        elif SIGNATURE_PATTERN.fullmatch(proof.signature) is None:
            message = "Invalid signature format: the embedded signature is malformed."
        else:
            return None

        return self._fail(
            VerificationOutcome.INVALID_SIGNATURE_FORMAT,
            message,
            document=document,
        )

    # ------------------------------------------------------------------
    # Layer 3: metadata integrity
    # ------------------------------------------------------------------

    def _check_metadata_integrity(self, document: _Document) -> Optional[VerificationResult]:
        proof = document.proof

        if not proof.credential_data and not proof.content_hash:
            return None

        if not proof.has_content_proof:
            missing = "content hash" if not proof.content_hash else "credential data"
            return self._fail(
                VerificationOutcome.METADATA_TAMPERED,
                f"Embedded proof is incomplete: the {missing} has been removed.",
                document=document,
            )

        try:
            credential_data = json.loads(proof.credential_data)
        except json.JSONDecodeError:
            credential_data = None

        if isinstance(credential_data, dict) and not isinstance(
            credential_data.get("evidence") or [], list
        ):
            credential_data = None

        if not isinstance(credential_data, dict):
            return self._fail(
                VerificationOutcome.METADATA_TAMPERED,
                "Embedded credential data is unreadable.",
                document=document,
            )

        recomputed = compute_content_hash(canonical_credential_json(credential_data))
        if recomputed != proof.content_hash:
            return self._fail(
                VerificationOutcome.METADATA_TAMPERED,
                "Embedded credential data does not match its content hash.",
                changes=[
                    ChangeRecord(
                        field="Content Hash",
                        original=proof.content_hash,
                        status=STATUS_MODIFIED,
                        current=recomputed,
                    )
                ],
                document=document,
            )

        document.credential_data = credential_data
        return None

    # ------------------------------------------------------------------
    # Layer 4: content cross-check
    # ------------------------------------------------------------------

    def _check_content(self, document: _Document) -> Optional[VerificationResult]:
        if not document.proof.has_content_proof:
            return None

        changes = self._cross_check(document.text, document.credential_data)

        if changes:
            return self._fail(
                VerificationOutcome.CONTENT_TAMPERED,
                f"Certificate content has been modified: {len(changes)} field(s) "
                "no longer match the embedded proof.",
                changes=changes,
                document=document,
            )

        return self._pass(
            "Certificate is authentic: visible content matches the embedded proof.",
            document=document,
        )

    def _cross_check(self, text: str, data: Dict[str, Any]) -> List[ChangeRecord]:
        changes: List[ChangeRecord] = []

        for anchor, key in IDENTITY_FIELDS:
            value = _as_text(data.get(key))
            if value and not anchor.matches(text, value):
                changes.append(
                    ChangeRecord(
                        field=anchor.field,
                        original=value,
                        status=STATUS_NOT_FOUND,
                        current=anchor.locate(text),
                    )
                )

        for field, key in FREE_TEXT_FIELDS:
            value = _as_text(data.get(key))
            if value and not fuzzy_present(text, value):
                changes.append(
                    ChangeRecord(
                        field=field,
                        original=_preview(value),
                        status=STATUS_TEXT_MODIFIED,
                    )
                )

        signature = _as_text(data.get("signature"))
        if signature:
            section = SIGNATURE_SECTION.extract(text)
            if section is None:
                changes.append(
                    ChangeRecord(
                        field="Digital Signature",
                        original=signature,
                        status=STATUS_SIGNATURE_SECTION_MISSING,
                    )
                )
            elif not section_contains(section, signature):
                changes.append(
                    ChangeRecord(
                        field="Digital Signature",
                        original=signature,
                        status=STATUS_SIGNATURE_MODIFIED,
                        current=_preview(collapse_whitespace(section)) or None,
                    )
                )

        evidence = data.get("evidence") or []
        missing = [
            _as_text(url) for url in evidence
            if not verbatim_present(text, _as_text(url))
        ]
        if missing:
            changes.append(
                ChangeRecord(
                    field="Evidence URLs",
                    original=", ".join(missing),
                    status=evidence_missing_status(len(missing)),
                )
            )

        return changes

    # ------------------------------------------------------------------
    # Layer 5: legacy token
    # ------------------------------------------------------------------

    def _check_legacy_token(self, document: _Document) -> Optional[VerificationResult]:
        token = document.proof.legacy_token
        if not token:
            return None

        try:
            state = tokens.verify(token, secret=self._secret)
        except tokens.TokenError as exc:
            return self._fail(
                VerificationOutcome.TOKEN_INVALID,
                f"Embedded token could not be verified: {exc}",
                document=document,
                legacy=True,
            )

        text = document.text
        expected = (
            (SKILL_CODE, state.skill_code),
            (CLAIMANT_NAME, state.claimant_name),
            (ENDORSER_NAME, state.endorser_name or ""),
        )
        changes = [
            ChangeRecord(
                field=anchor.field,
                original=value,
                status=STATUS_NOT_FOUND,
                current=anchor.locate(text),
            )
            for anchor, value in expected
            if value and not anchor.matches(text, value)
        ]

        if changes:
            return self._fail(
                VerificationOutcome.CONTENT_TAMPERED,
                f"Certificate content has been modified: {len(changes)} field(s) "
                "no longer match the embedded token.",
                changes=changes,
                document=document,
                legacy=True,
            )

        return self._pass(
            "Legacy certificate verified against its embedded token.",
            document=document,
            legacy=True,
        )

    # ------------------------------------------------------------------
    # Layer 6: minimal legacy
    # ------------------------------------------------------------------

    def _accept_minimal_legacy(self, document: _Document) -> Optional[VerificationResult]:
        return self._pass(
            "Signature format is valid, but this certificate predates embedded "
            "content proofs. Full tamper verification was not possible.",
            document=document,
            legacy=True,
        )

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _fail(
        outcome: VerificationOutcome,
        message: str,
        *,
        changes: Optional[List[ChangeRecord]] = None,
        document: Optional[_Document] = None,
        legacy: bool = False,
    ) -> VerificationResult:
        proof = document.proof if document is not None else ProofBundle()
        return VerificationResult(
            valid=False,
            outcome=outcome,
            message=message,
            changes=changes or [],
            claim_id=proof.claim_id,
            version=proof.version,
            timestamp=proof.timestamp,
            legacy=legacy,
        )

    @staticmethod
    def _pass(
        message: str,
        *,
        document: _Document,
        legacy: bool = False,
    ) -> VerificationResult:
        proof = document.proof
        return VerificationResult(
            valid=True,
            outcome=VerificationOutcome.VALID,
            message=message,
            content_hash=proof.content_hash,
            claim_id=proof.claim_id,
            version=proof.version,
            timestamp=proof.timestamp,
            legacy=legacy,
        )
