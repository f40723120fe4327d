"""
Cryptographic primitives for credential proofs.

This module provides the low-level operations used by the artifact signer
and the tamper verifier:

- Canonical serialization of the credential fields (fixed key order)
- SHA-256 content hashing of canonical bytes
- HMAC-SHA256 identity signatures

IMPORTANT DESIGN RULE:
- Signer and verifier MUST both go through ``canonical_credential_json``.
  Any divergence in key order, separators or escaping breaks every
  previously issued certificate.
"""

import hashlib
import hmac
import json
from typing import Any, Mapping, Union


# Order is part of the wire format. Do not reorder.
CANONICAL_FIELD_ORDER = (
    "skillName",
    "skillCode",
    "skillDescription",
    "claimantName",
    "narrative",
    "endorserName",
    "endorsementText",
    "bonaFides",
    "signature",
    "evidence",
)


def canonical_credential_json(fields: Mapping[str, Any]) -> str:
    """
    Serialize credential fields into their canonical JSON form.

    Keys are emitted in ``CANONICAL_FIELD_ORDER`` regardless of the input
    mapping's order. Keys absent from the input are omitted, except
    ``evidence`` which always serializes (an absent or empty list becomes
    ``[]``). Output uses compact separators and leaves non-ASCII text
    unescaped, matching certificates issued before this service existed.
    """
    ordered: dict[str, Any] = {}
    for key in CANONICAL_FIELD_ORDER:
        if key == "evidence":
            ordered[key] = fields.get("evidence") or []
        elif key in fields:
            ordered[key] = fields[key]

    return json.dumps(ordered, ensure_ascii=False, separators=(",", ":"))


def compute_content_hash(canonical: Union[str, bytes, bytearray]) -> str:
    """
    Compute the hex SHA-256 digest of canonical credential JSON.

    Input MUST already be canonicalized. Text input is UTF-8 encoded.
    """
    if isinstance(canonical, str):
        canonical = canonical.encode("utf-8")

    if not isinstance(canonical, (bytes, bytearray)):
        raise TypeError(
            "compute_content_hash expects canonical text or bytes, "
            f"got {type(canonical).__name__}"
        )

    return hashlib.sha256(canonical).hexdigest()


def identity_signature_message(
    *,
    skill_code: str,
    claimant_name: str,
    endorser_name: str,
    timestamp: str,
) -> str:
    return f"{skill_code}:{claimant_name}:{endorser_name}:{timestamp}"


def compute_identity_signature(
    *,
    secret: str,
    skill_code: str,
    claimant_name: str,
    endorser_name: str,
    timestamp: str,
) -> str:
    """
    HMAC-SHA256 over the identity fields and the issuance timestamp.

    Returns a lowercase hex digest (64 characters).
    """
    message = identity_signature_message(
        skill_code=skill_code,
        claimant_name=claimant_name,
        endorser_name=endorser_name,
        timestamp=timestamp,
    )
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def compute_body_signature(*, secret: str, body: Union[str, bytes]) -> str:
    """HMAC-SHA256 hex digest of a webhook body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
