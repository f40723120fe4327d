"""
Certificate rendering.

Transforms a ``CertificateDocument`` into PDF bytes with Jinja2 + LuaLaTeX.

Design guarantees:
- Deterministic template rendering (Jinja2 + StrictUndefined)
- Every user-supplied string passes through the ``latex`` escape filter
- No shell escape, compilation halted on the first LaTeX error
- Compilation happens in a scoped temporary directory, released on every
  exit path, under a bounded subprocess timeout

Trust boundary:
- This module is presentation-only. The content hash and signatures are
  computed from the credential fields, never from what is rendered here.
- The layout (section labels and their order) is relied on by the tamper
  verifier's content cross-check. Label changes must be mirrored in
  ``text_matching``.
"""

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, StrictUndefined

logger = logging.getLogger("endorsement.rendering")


CERTIFICATE_TEMPLATE = "certificate/main.tex.jinja"

_LATEX_ESCAPES = {
    "\\": r"\textbackslash{}",
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
    "~": r"\textasciitilde{}",
    "^": r"\textasciicircum{}",
    "'": r"\textquotesingle{}",
    "`": r"\textasciigrave{}",
    "-": "-{}",
}


def latex_escape(value: object) -> str:
    return "".join(_LATEX_ESCAPES.get(char, char) for char in str(value))


class RenderError(RuntimeError):
    """
    Raised when rendering or compilation fails.

    ``source`` carries the rendered template text when rendering got that
    far, so callers can degrade to delivering it unsigned.
    """

    def __init__(self, message: str, *, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


@dataclass(frozen=True)
class CertificateDocument:
    """Everything printed on a certificate."""

    certificate_id: str
    issued_on: date
    issuer_name: str
    primary_color: str

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


class DocumentRenderer(Protocol):
    def render(self, document: CertificateDocument) -> bytes:
        ...


class LatexCertificateRenderer:
    def __init__(
        self,
        *,
        template_root: Path,
        lualatex_binary: str = "lualatex",
        timeout: float = 60.0,
    ):
        template_root = Path(template_root).resolve()
        if not template_root.is_dir():
            raise RuntimeError(f"template root does not exist: {template_root}")

        self._template_root = template_root
        self._binary = lualatex_binary
        self._timeout = timeout

        self._env = Environment(
            loader=FileSystemLoader(template_root),
            block_start_string=r"\BLOCK{",
            block_end_string="}",
            variable_start_string=r"\VAR{",
            variable_end_string="}",
            comment_start_string=r"\#{",
            comment_end_string="}",
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["latex"] = latex_escape

    def render_source(self, document: CertificateDocument) -> str:
        template = self._env.get_template(CERTIFICATE_TEMPLATE)
        return template.render(
            doc=document,
            primary_color=document.primary_color.lstrip("#").upper(),
            issued_on=document.issued_on.strftime("%B %d, %Y"),
        )

    def render(self, document: CertificateDocument) -> bytes:
        try:
            source = self.render_source(document)
        except Exception as exc:
            raise RenderError(f"template rendering failed: {exc}") from exc

        with tempfile.TemporaryDirectory(prefix="certificate-") as tmp:
            return self._compile(source, Path(tmp))

    def _compile(self, source: str, outdir: Path) -> bytes:
        tex_file = outdir / "certificate.tex"
        tex_file.write_text(source, encoding="utf-8")

        command = [
            self._binary,
            "-interaction=nonstopmode",
            "-halt-on-error",
            "-no-shell-escape",
            f"-output-directory={outdir}",
            tex_file.name,
        ]

        env_vars = os.environ.copy()
        existing_texinputs = env_vars.get("TEXINPUTS", "")
        env_vars["TEXINPUTS"] = f"{self._template_root}{os.pathsep}{existing_texinputs}"

        try:
            process = subprocess.run(
                command,
                cwd=outdir,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                env=env_vars,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RenderError(
                f"LuaLaTeX timed out after {self._timeout}s", source=source
            ) from exc
        except OSError as exc:
            raise RenderError(
                f"failed to invoke LuaLaTeX: {exc}", source=source
            ) from exc

        if process.returncode != 0:
            stdout = process.stdout.decode("utf-8", errors="ignore")
            logger.warning(
                "certificate_compilation_failed",
                extra={"returncode": process.returncode, "log_tail": stdout[-2000:]},
            )
            raise RenderError("LuaLaTeX compilation failed", source=source)

        pdf_file = outdir / "certificate.pdf"
        if not pdf_file.exists():
            raise RenderError(
                "LuaLaTeX reported success, but no PDF output was produced.",
                source=source,
            )

        return pdf_file.read_bytes()
