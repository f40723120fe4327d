import subprocess
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from endorsement.app.config import DEFAULT_TEMPLATE_DIR
from endorsement.app.services.rendering import (
    CertificateDocument,
    LatexCertificateRenderer,
    RenderError,
    latex_escape,
)


def document(**overrides) -> CertificateDocument:
    values = dict(
        certificate_id="3F2A9C1E",
        issued_on=date(2024, 3, 5),
        issuer_name="What's Cookin' Inc.",
        primary_color="#0b5fff",
        skill_name="Database Design",
        skill_code="ICT403",
        skill_description="Designs normalised relational schemas",
        claimant_name="Ada Lovelace",
        narrative="Migrated the billing platform",
        endorser_name="Grace Hopper",
        bona_fides="Principal engineer",
        endorsement_text="Ada delivered robust schema migrations",
        signature="Grace Hopper",
        evidence=["https://github.com/ada/schema_tools"],
    )
    values.update(overrides)
    return CertificateDocument(**values)


def renderer(binary="lualatex") -> LatexCertificateRenderer:
    return LatexCertificateRenderer(template_root=DEFAULT_TEMPLATE_DIR, lualatex_binary=binary)


def test_latex_escape_covers_special_characters():
    assert latex_escape("50% & $5 #1 a_b {x} ~ ^") == (
        r"50\% \& \$5 \#1 a\_b \{x\} \textasciitilde{} \textasciicircum{}"
    )
    assert latex_escape("C:\\path") == r"C:\textbackslash{}path"


def test_latex_escape_defeats_quote_and_dash_ligatures():
    assert latex_escape("O'Brien") == r"O\textquotesingle{}Brien"
    assert latex_escape("``a--b---c") == r"\textasciigrave{}\textasciigrave{}a-{}-{}b-{}-{}-{}c"


def test_source_keeps_apostrophes_and_dashes_literal():
    source = renderer().render_source(
        document(claimant_name="Conan O'Brien", endorser_name="Jean-Luc Picard", signature="Conan O'Brien")
    )

    assert "Claimant: Conan O\\textquotesingle{}Brien" in source
    assert "Endorsement by: Jean-{}Luc Picard" in source
    assert "Ligatures=CommonOff" in source
    assert "Ligatures={TeX" not in source
    assert "``" not in source


def test_source_prints_every_labelled_section():
    source = renderer().render_source(document())

    for line in (
        "Skill: Database Design",
        "Skill Code: ICT403",
        "Claimant: Ada Lovelace",
        "Endorsement by: Grace Hopper",
        "Endorser Credentials:",
        "Endorsement Statement:",
        "Supporting Evidence",
        "Digital Signature:",
        "This is a digitally verified skill endorsement certificate.",
        "Generated with SkillsAware OBv3 Endorsement System",
    ):
        assert line in source

    assert r"\definecolor{brand}{HTML}{0B5FFF}" in source
    assert "March 05, 2024" in source
    assert r"https://github.com/ada/schema\_tools" in source


def test_source_escapes_user_input():
    source = renderer().render_source(document(claimant_name=r"\input{/etc/passwd}"))

    assert r"\input{/etc/passwd}" not in source
    assert r"\textbackslash{}input\{/etc/passwd\}" in source


def test_evidence_section_omitted_without_urls():
    assert "Supporting Evidence" not in renderer().render_source(document(evidence=[]))


def test_missing_binary_raises_with_source():
    with pytest.raises(RenderError) as excinfo:
        renderer(binary="definitely-not-lualatex").render(document())

    assert excinfo.value.source is not None
    assert "Skill Code: ICT403" in excinfo.value.source


def test_missing_template_root_is_rejected(tmp_path):
    with pytest.raises(RuntimeError):
        LatexCertificateRenderer(template_root=tmp_path / "missing")


def test_successful_compile_returns_pdf_bytes():
    def fake_run(command, cwd, **kwargs):
        (Path(cwd) / "certificate.pdf").write_bytes(b"%PDF-1.7 compiled")
        return subprocess.CompletedProcess(command, 0, stdout=b"", stderr=b"")

    with patch("subprocess.run", side_effect=fake_run) as run:
        pdf_bytes = renderer().render(document())

    assert pdf_bytes == b"%PDF-1.7 compiled"
    command = run.call_args.args[0]
    assert "-no-shell-escape" in command
    assert "-halt-on-error" in command


def test_failed_compile_raises_with_source():
    failed = subprocess.CompletedProcess(["lualatex"], 1, stdout=b"! Undefined control sequence.", stderr=b"")

    with patch("subprocess.run", return_value=failed):
        with pytest.raises(RenderError) as excinfo:
            renderer().render(document())

    assert "Digital Signature:" in excinfo.value.source


def test_compile_timeout_raises():
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("lualatex", 60)):
        with pytest.raises(RenderError, match="timed out"):
            renderer().render(document())
