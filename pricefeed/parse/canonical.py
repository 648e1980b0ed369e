"""Canonical product keys used to match items across files and chains."""
import re
from typing import Optional

# Unit vocabulary (weight, volume, count). Longest spellings first so the
# alternation never stops on a prefix of a longer unit.
UNITS = (
    "יחידות", "יחידה", "יח'", "יח",
    "ליטר", "ליטרים",
    "גרם", "גר'", "גר",
    'ק"ג', "קג", "קילו",
    'מ"ל', "מל",
    'מ"ג', "מג",
    "ל'", "ג'",
    "ג", "ל",
    "kg", "gr", "ml", "mg", "ltr", "l", "g",
)
_UNIT_ALT = "|".join(re.escape(u) for u in sorted(set(UNITS), key=len, reverse=True))

QUANTITY_RE = re.compile(rf"\d+(?:[.,]\d+)?\s*(?:{_UNIT_ALT})(?![A-Za-z\u0590-\u05FF])", re.IGNORECASE)
MULTIPLIER_PREFIX_RE = re.compile(r"(?<![A-Za-z\u0590-\u05FF\d.,])\d+\s*[xX×\*](?![A-Za-z\u0590-\u05FF])")
MULTIPLIER_RE = re.compile(r"(?<![A-Za-z\u0590-\u05FF])\s*[xX×\*]\s*\d+")
PERCENT_RE = re.compile(r"\d+(?:[.,]\d+)?\s*%")
BRACKETED_RE = re.compile(r"\([^()]*\)|\[[^\[\]]*\]|\{[^{}]*\}")
STRAY_BRACKETS_RE = re.compile(r"[()\[\]{}]")
STRAY_QUOTES_RE = re.compile(r"(?<!\S)['\"\u05F3\u05F4]+(?!\S)")
WHITESPACE_RE = re.compile(r"\s+")


def _strip_once(text: str) -> str:
    text = QUANTITY_RE.sub(" ", text)
    text = MULTIPLIER_PREFIX_RE.sub(" ", text)
    text = MULTIPLIER_RE.sub(" ", text)
    text = PERCENT_RE.sub(" ", text)
    text = BRACKETED_RE.sub(" ", text)
    text = STRAY_BRACKETS_RE.sub(" ", text)
    text = STRAY_QUOTES_RE.sub(" ", text)
    return WHITESPACE_RE.sub(" ", text).strip()


def normalize_canonical(name: Optional[str]) -> Optional[str]:
    """Map a product label to its canonical comparison key.

    Strips quantity+unit tokens, multipliers, percentages and bracketed
    segments, then collapses whitespace. Stripping repeats until nothing
    changes, so the result is a fixed point and normalizing it again is a
    no-op. Returns None when nothing is left.
    """
    if not name:
        return None
    text = WHITESPACE_RE.sub(" ", str(name)).strip()
    while True:
        stripped = _strip_once(text)
        if stripped == text:
            break
        text = stripped
    return text or None


def collapse_whitespace(name: Optional[str]) -> str:
    """Raw item names are kept, only whitespace is collapsed."""
    return WHITESPACE_RE.sub(" ", str(name or "")).strip()
