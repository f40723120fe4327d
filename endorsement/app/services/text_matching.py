"""
Pattern matching over extracted certificate text.

Three kinds of matcher are used by the content cross-check:

- ``LabelAnchor``: a value must appear directly after its section label
  ("Claimant: A. Claimant"). Used for short identity fields.
- ``fuzzy_present``: a long free-text value is considered present when
  enough of its leading significant words occur anywhere in the text.
  Tolerates line wrapping and hyphenation by the renderer.
- ``SectionAnchor``: the text between a heading and the next known heading,
  used to confine the typed signature check to its own section.

All matching is case-insensitive unless stated otherwise, and whitespace in
expected values matches any run of whitespace in the text.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence


SIGNIFICANT_WORD_MIN_LENGTH = 4
SIGNIFICANT_WORD_LIMIT = 5
FUZZY_REQUIRED_WORDS = 3


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def _flexible(value: str) -> str:
    return r"\s+".join(re.escape(part) for part in value.split())


# ---------------------------------------------------------------------------
# Label anchors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LabelAnchor:
    """A section label followed by a single-line value."""

    field: str
    label: str

    def matches(self, text: str, value: str) -> bool:
        pattern = rf"{self.label}[:\s]+{_flexible(value)}(?!\w)"
        return re.search(pattern, text, re.IGNORECASE) is not None

    def locate(self, text: str) -> Optional[str]:
        """Return the value currently printed after the label, if any."""
        match = re.search(rf"{self.label}:[ \t]*([^\n]+)", text, re.IGNORECASE)
        if match is None:
            return None
        return match.group(1).strip() or None


SKILL_NAME = LabelAnchor("Skill Name", r"\bSkill(?!\s+(?:Code|Narrative)\b)")
SKILL_CODE = LabelAnchor("Skill Code", r"\bSkill\s+Code")
CLAIMANT_NAME = LabelAnchor("Claimant Name", r"\bClaimant")
ENDORSER_NAME = LabelAnchor("Endorser Name", r"\bEndorsement\s+by")


# ---------------------------------------------------------------------------
# Fuzzy free-text presence
# ---------------------------------------------------------------------------

def significant_words(value: str) -> List[str]:
    words = [
        word for word in value.split()
        if len(word) >= SIGNIFICANT_WORD_MIN_LENGTH
    ]
    return words[:SIGNIFICANT_WORD_LIMIT]


def fuzzy_present(text: str, value: str) -> bool:
    """
    True when at least ``min(3, n)`` of the first five significant words of
    ``value`` occur in ``text``. A value with no significant words is
    trivially present.
    """
    words = significant_words(value)
    required = min(FUZZY_REQUIRED_WORDS, len(words))

    haystack = text.lower()
    found = sum(1 for word in words if word.lower() in haystack)
    return found >= required


# ---------------------------------------------------------------------------
# Bounded sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SectionAnchor:
    heading: str
    terminators: Sequence[str]

    def extract(self, text: str) -> Optional[str]:
        """
        Text between the heading and the first terminator (or end of text).

        Returns ``None`` when the heading is absent.
        """
        stop = "|".join(self.terminators)
        pattern = rf"{self.heading}[:\s]+(.*?)(?={stop}|\Z)"
        match = re.search(pattern, text, re.IGNORECASE | re.DOTALL)
        if match is None:
            return None
        return match.group(1).strip()


SIGNATURE_SECTION = SectionAnchor(
    heading=r"Digital\s+Signature",
    terminators=(r"This\s+is\s+a\s+digitally", r"Generated\s+with"),
)


def section_contains(section: str, value: str) -> bool:
    """Literal containment, case-sensitive, whitespace-normalized."""
    return collapse_whitespace(value) in collapse_whitespace(section)


def verbatim_present(text: str, value: str) -> bool:
    """
    Literal containment of a token-like value such as a URL.

    The renderer may break long URLs across lines, so a match against the
    whitespace-stripped text also counts.
    """
    if value in text:
        return True
    return "".join(value.split()) in "".join(text.split())
