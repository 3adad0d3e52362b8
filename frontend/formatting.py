# formatting.py

import html
import logging
import re
from typing import Dict, NamedTuple

logger = logging.getLogger(__name__)

SECTION_LABELS = {
    "symptoms": "Key Symptoms",
    "conditions": "Possible Conditions",
    "recommendations": "Medical Recommendations",
}

TRANSCRIPT_LABEL = "Transcript"

# Only the known headings end a section; bold sub-bullets such as
# "**Headache:**" belong to the section they appear in.
_KNOWN_LABELS = (TRANSCRIPT_LABEL,) + tuple(SECTION_LABELS.values())
_NEXT_MARKER = (
    r"(?=\*\*(?:" + "|".join(re.escape(label) for label in _KNOWN_LABELS) + r"):\*\*|\Z)"
)


class AnalysisSections(NamedTuple):
    symptoms: str
    conditions: str
    recommendations: str

    def is_empty(self) -> bool:
        return not (self.symptoms or self.conditions or self.recommendations)


def _section_pattern(label: str) -> "re.Pattern[str]":
    return re.compile(
        r"\*\*" + re.escape(label) + r":\*\*(.*?)" + _NEXT_MARKER,
        re.IGNORECASE | re.DOTALL,
    )


def extract_labeled_section(text: str, label: str) -> str:
    """Returns the trimmed text after '**label:**', or an empty string if absent."""
    match = _section_pattern(label).search(text or "")
    return match.group(1).strip() if match else ""


_SECTION_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    key: _section_pattern(label) for key, label in SECTION_LABELS.items()
}


def extract_sections(text: str) -> AnalysisSections:
    """
    Splits the provider's free-text answer into labelled subsections.

    A section is the text after '**Label:**' up to the next bold label or
    the end of the string. Missing labels give empty strings.
    """
    found = {}
    for key, pattern in _SECTION_PATTERNS.items():
        match = pattern.search(text or "")
        found[key] = match.group(1).strip() if match else ""

    sections = AnalysisSections(**found)
    if text and sections.is_empty():
        logger.warning(
            "None of the expected section labels were found in the analysis; "
            "showing the raw text instead."
        )
    return sections


def render_analysis_markdown(text: str) -> str:
    """
    Builds the Markdown shown in the results panel.
    Uses the extracted sections when any were found, the raw text otherwise.
    """
    if not text or not text.strip():
        return ""

    sections = extract_sections(text)
    if sections.is_empty():
        return f"## 🩺 AI Analysis\n\n{html.escape(text.strip())}"

    parts = ["## 🩺 AI Analysis"]
    for key, label in SECTION_LABELS.items():
        content = getattr(sections, key)
        if content:
            parts.append(f"### {label}\n\n{html.escape(content)}")
    return "\n\n".join(parts)
