"""
Verbose-content trimming applied before text is sent to the model.

Forwarded emails tend to carry authentication reports and header dumps that
cost tokens and add nothing to a notification. The patterns below strip the
common ones. This is best-effort: if trimming removes more than 60% of the
text, or anything goes wrong, the original text is used unchanged.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# A labelled section runs until the next "Capitalised" line, a blank line, or the end
_SECTION_END = r"(?=\n[A-Z][a-z]|\n\n|\Z)"

_VERBOSE_PATTERNS = [
    # Email authentication headers
    re.compile(r"SPF Result:[\s\S]*?" + _SECTION_END, re.IGNORECASE),
    re.compile(r"DKIM Result:[\s\S]*?" + _SECTION_END, re.IGNORECASE),
    re.compile(r"DMARC (?:Result|Policy|Info):[\s\S]*?" + _SECTION_END, re.IGNORECASE),
    re.compile(r"BIMI Location:[\s\S]*?" + _SECTION_END, re.IGNORECASE),
    re.compile(r"Message ID:[\s\S]*?" + _SECTION_END, re.IGNORECASE),
    # Full header dump block
    re.compile(r"View Full Email Headers[\s\S]*?(?=\n\n[A-Z]|\Z)", re.IGNORECASE),
    # Long hex identifiers and hashes
    re.compile(r"[a-f0-9]{32,}", re.IGNORECASE),
]

_EXCESS_NEWLINES = re.compile(r"\n{3,}")

# Minimum share of the original length the trimmed text must keep
MIN_KEPT_RATIO = 0.4


def trim_verbose_content(text: str) -> str:
    """
    Remove known-verbose sections from text.

    Returns the original text when the result would be shorter than
    MIN_KEPT_RATIO of the original (the heuristics over-matched), when the
    result is empty, or when trimming raises.
    """
    try:
        trimmed = text
        for pattern in _VERBOSE_PATTERNS:
            trimmed = pattern.sub("", trimmed)

        trimmed = _EXCESS_NEWLINES.sub("\n\n", trimmed).strip()

        if len(trimmed) < len(text) * MIN_KEPT_RATIO or not trimmed:
            return text

        if len(trimmed) < len(text):
            logger.debug("Trimmed payload from %d to %d chars", len(text), len(trimmed))
        return trimmed
    except Exception:
        logger.error("Trimming failed, using original payload", exc_info=True)
        return text


def should_trim(verbose: Optional[str]) -> bool:
    """Trimming is skipped only for an exact ?verbose=true."""
    return verbose != "true"
