"""
PDF document information dictionary access.

Reads and writes the classic ``/Info`` dictionary with pikepdf. The proof
bundle and the descriptive fields (Title, Creator, ...) live here rather
than in XMP so certificates remain readable by the widest set of PDF tools.

All functions operate on bytes and never touch the filesystem.
"""

import io
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import pikepdf

from endorsement.app.schemas.proof import METADATA_KEY_PREFIX

logger = logging.getLogger("endorsement.pdf_metadata")


DESCRIPTIVE_KEYS = {
    "/Title": "title",
    "/Author": "author",
    "/Subject": "subject",
    "/Keywords": "keywords",
    "/Creator": "creator",
    "/Producer": "producer",
    "/CreationDate": "creation_date",
    "/ModDate": "modification_date",
}


class PdfMetadataError(RuntimeError):
    """Raised when metadata cannot be written into a PDF."""


@dataclass(frozen=True)
class DocumentMetadata:
    """Snapshot of a document's information dictionary."""

    info: Dict[str, str]
    page_count: int

    @property
    def creator(self) -> Optional[str]:
        return self.info.get("/Creator")

    def descriptive(self) -> Dict[str, Optional[str]]:
        return {name: self.info.get(key) for key, name in DESCRIPTIVE_KEYS.items()}

    def vendor_fields(self) -> Dict[str, str]:
        return {
            key[len(METADATA_KEY_PREFIX):]: value
            for key, value in self.info.items()
            if key.startswith(METADATA_KEY_PREFIX)
        }


def read_metadata(pdf_bytes: bytes) -> Optional[DocumentMetadata]:
    """
    Read the information dictionary of ``pdf_bytes``.

    Returns ``None`` when the bytes are not a parseable PDF. Non-string
    values (dates stored as names, nested objects) are stringified.
    """
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            info: Dict[str, str] = {}
            for key, value in pdf.docinfo.items():
                info[str(key)] = str(value)
            return DocumentMetadata(info=info, page_count=len(pdf.pages))
    except (pikepdf.PdfError, ValueError) as exc:
        logger.info(
            "pdf_metadata_unreadable",
            extra={"error": str(exc), "size": len(pdf_bytes)},
        )
        return None


def write_metadata(pdf_bytes: bytes, entries: Mapping[str, str]) -> bytes:
    """
    Return a copy of ``pdf_bytes`` with ``entries`` set in the information
    dictionary. Existing keys not named in ``entries`` are preserved.
    """
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            docinfo = pdf.docinfo
            for key, value in entries.items():
                if not key.startswith("/"):
                    raise PdfMetadataError(f"invalid info dictionary key: {key}")
                docinfo[key] = pikepdf.String(value)

            buffer = io.BytesIO()
            pdf.save(buffer)
            return buffer.getvalue()
    except pikepdf.PdfError as exc:
        raise PdfMetadataError(f"cannot write PDF metadata: {exc}") from exc
