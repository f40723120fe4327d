import io
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

import pikepdf
from pikepdf import Dictionary, Name, Stream

from endorsement.app.schemas.proof import CredentialFields
from endorsement.app.services.rendering import CertificateDocument


TEST_SECRET = "test-signing-secret-0123456789abcdef"
ISSUER_NAME = "What's Cookin' Inc."


# ------------------------------------------------------------------
# Canonical credential fields used across tests
# ------------------------------------------------------------------

def sample_fields(**overrides) -> CredentialFields:
    values = dict(
        skill_name="Database Design",
        skill_code="ICT403",
        skill_description="Designs normalised relational schemas and tunes query performance",
        claimant_name="Ada Lovelace",
        narrative="Migrated the billing platform onto partitioned PostgreSQL clusters",
        endorser_name="Grace Hopper",
        endorsement_text="Ada consistently delivered robust schema migrations under pressure",
        bona_fides="Principal engineer, fifteen years leading data teams",
        signature="Grace Hopper",
        evidence=["https://github.com/ada/schema-tools"],
    )
    values.update(overrides)
    return CredentialFields(**values)


# ------------------------------------------------------------------
# Visible certificate layout
#
# Mirrors the section labels and order of the LaTeX certificate
# template, so pypdf extraction yields the same text shape as a
# real certificate without requiring LuaLaTeX.
# ------------------------------------------------------------------

@dataclass(frozen=True)
class VisibleCertificate:
    skill_name: str
    skill_code: str
    skill_description: str
    claimant_name: str
    narrative: str
    endorser_name: str
    bona_fides: str
    endorsement_text: str
    signature: str
    evidence: List[str] = field(default_factory=list)
    include_signature_section: bool = True

    @classmethod
    def from_fields(cls, fields: CredentialFields) -> "VisibleCertificate":
        return cls(
            skill_name=fields.skill_name,
            skill_code=fields.skill_code,
            skill_description=fields.skill_description,
            claimant_name=fields.claimant_name,
            narrative=fields.narrative,
            endorser_name=fields.endorser_name,
            bona_fides=fields.bona_fides,
            endorsement_text=fields.endorsement_text,
            signature=fields.signature,
            evidence=list(fields.evidence),
        )

    def edited(self, **changes) -> "VisibleCertificate":
        return replace(self, **changes)

    def lines(self) -> List[str]:
        lines = [
            "Skill Endorsement Certificate",
            f"Issued by: {ISSUER_NAME}",
            "January 01, 2024",
            f"Skill: {self.skill_name}",
            f"Skill Code: {self.skill_code}",
            self.skill_description,
            f"Claimant: {self.claimant_name}",
            "Skill Narrative:",
            f'"{self.narrative}"',
            f"Endorsement by: {self.endorser_name}",
            "Endorser Credentials:",
            self.bona_fides,
            "Endorsement Statement:",
            f'"{self.endorsement_text}"',
        ]
        if self.evidence:
            lines.append("Supporting Evidence")
            lines.extend(self.evidence)
        if self.include_signature_section:
            lines.append("Digital Signature:")
            lines.append(self.signature)
        lines.extend(
            [
                "This is a digitally verified skill endorsement certificate.",
                "Certificate ID: 5F0C2A1B",
                "Generated with SkillsAware OBv3 Endorsement System",
            ]
        )
        return lines


def _pdf_literal(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    return f"({escaped})"


def text_pdf(lines: Iterable[str], *, info: Optional[Dict[str, str]] = None) -> bytes:
    """
    Single-page PDF with one text line per entry, Helvetica 9pt.
    """
    ops = ["BT", "/F1 9 Tf", "40 800 Td"]
    for index, line in enumerate(lines):
        if index:
            ops.append("0 -13 Td")
        ops.append(f"{_pdf_literal(line)} Tj")
    ops.append("ET")
    content = "\n".join(ops).encode("cp1252")

    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        page = pdf.add_blank_page(page_size=(595, 842))

        font = pdf.make_indirect(
            Dictionary(
                Type=Name.Font,
                Subtype=Name.Type1,
                BaseFont=Name.Helvetica,
                Encoding=Name.WinAnsiEncoding,
            )
        )

        page.Resources = Dictionary(Font=Dictionary(F1=font))
        page.Contents = pdf.make_indirect(Stream(pdf, content))

        for key, value in (info or {}).items():
            pdf.docinfo[key] = pikepdf.String(value)

        pdf.save(buffer)

    return buffer.getvalue()


def certificate_pdf(visible: VisibleCertificate, *, info: Optional[Dict[str, str]] = None) -> bytes:
    return text_pdf(visible.lines(), info=info)


# ------------------------------------------------------------------
# Metadata surgery (simulates post-issuance edits)
# ------------------------------------------------------------------

def read_docinfo(pdf_bytes: bytes) -> Dict[str, str]:
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        return {str(key): str(value) for key, value in pdf.docinfo.items()}


def rewrite_docinfo(
    pdf_bytes: bytes,
    *,
    updates: Optional[Dict[str, str]] = None,
    remove: Iterable[str] = (),
) -> bytes:
    buffer = io.BytesIO()
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        for key, value in (updates or {}).items():
            pdf.docinfo[key] = pikepdf.String(value)
        for key in remove:
            if key in pdf.docinfo:
                del pdf.docinfo[key]
        pdf.save(buffer)
    return buffer.getvalue()


def transplant_docinfo(source: bytes, target: bytes) -> bytes:
    """Copy every information dictionary entry of ``source`` onto ``target``."""
    return rewrite_docinfo(target, updates=read_docinfo(source))


# ------------------------------------------------------------------
# Renderer double
# ------------------------------------------------------------------

class FakeCertificateRenderer:
    """Renders the test layout instead of invoking LuaLaTeX."""

    def __init__(self):
        self.rendered: List[CertificateDocument] = []

    def render(self, document: CertificateDocument) -> bytes:
        self.rendered.append(document)
        visible = VisibleCertificate(
            skill_name=document.skill_name,
            skill_code=document.skill_code,
            skill_description=document.skill_description,
            claimant_name=document.claimant_name,
            narrative=document.narrative,
            endorser_name=document.endorser_name,
            bona_fides=document.bona_fides,
            endorsement_text=document.endorsement_text,
            signature=document.signature,
            evidence=list(document.evidence),
        )
        return certificate_pdf(visible)
