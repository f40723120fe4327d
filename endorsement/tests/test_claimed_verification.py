from endorsement.app.schemas.proof import ProofSlot
from endorsement.app.schemas.verification import VerificationOutcome
from endorsement.app.services.signing import ArtifactSigner
from endorsement.app.services.verification import TamperVerifier

from endorsement.tests.fixtures.pdf_factory import (
    ISSUER_NAME,
    TEST_SECRET,
    VisibleCertificate,
    certificate_pdf,
    rewrite_docinfo,
    sample_fields,
    text_pdf,
)


verifier = TamperVerifier(secret=TEST_SECRET)


def signed_certificate() -> bytes:
    fields = sample_fields()
    return ArtifactSigner(secret=TEST_SECRET).sign(
        certificate_pdf(VisibleCertificate.from_fields(fields)),
        fields=fields,
        claim_id="claim-1",
        issuer_name=ISSUER_NAME,
    ).pdf_bytes


def test_correct_identity_reproduces_signature():
    result = verifier.verify_claimed(
        signed_certificate(),
        skill_code="ICT403",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
    )

    assert result.valid is True
    assert result.signature_match is True
    assert result.outcome == VerificationOutcome.VALID
    assert result.differences == []
    assert result.timestamp


def test_wrong_claimant_name_lists_the_difference():
    result = verifier.verify_claimed(
        signed_certificate(),
        skill_code="ICT403",
        claimant_name="Ada Byron",
        endorser_name="Grace Hopper",
    )

    assert result.valid is False
    assert result.outcome == VerificationOutcome.SIGNATURE_MISMATCH
    assert len(result.differences) == 1

    difference = result.differences[0]
    assert difference.field == "Claimant Name"
    assert difference.you_entered == "Ada Byron"
    assert difference.pdf_contains == "Ada Lovelace"

    assert result.expected_signature.endswith("...")
    assert len(result.expected_signature) == 19
    assert result.found_signature.endswith("...")


def test_each_identity_input_is_covered_by_the_signature():
    pdf_bytes = signed_certificate()
    correct = dict(
        skill_code="ICT403",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
    )

    for key in correct:
        changed = {**correct, key: correct[key] + "X"}
        assert verifier.verify_claimed(pdf_bytes, **changed).signature_match is False


def test_identity_signature_is_case_sensitive():
    result = verifier.verify_claimed(
        signed_certificate(),
        skill_code="ict403",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
    )

    assert result.valid is False
    assert [d.field for d in result.differences] == ["Skill Code"]


def test_document_without_signature_is_reported():
    pdf_bytes = rewrite_docinfo(signed_certificate(), remove=[ProofSlot.SIGNATURE.key])

    result = verifier.verify_claimed(
        pdf_bytes,
        skill_code="ICT403",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
    )

    assert result.outcome == VerificationOutcome.SIGNATURE_MISSING
    assert result.valid is False


def test_foreign_pdf_has_no_signature():
    result = verifier.verify_claimed(
        text_pdf(["Hello"]),
        skill_code="ICT403",
        claimant_name="Ada Lovelace",
        endorser_name="Grace Hopper",
    )

    assert result.outcome == VerificationOutcome.SIGNATURE_MISSING
