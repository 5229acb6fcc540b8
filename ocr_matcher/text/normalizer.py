"""Deterministic cleanup of OCR text fragments.

Folds case and diacritics, strips punctuation noise and drops filler
words so that the same product printed on two documents normalizes to
the same string.
"""

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Standalone connector/pack tokens that carry no identity
FILLER_TOKENS: frozenset[str] = frozenset({"p", "pz", "de", "con"})


def strip_diacritics(text: str) -> str:
    """Decompose to NFD and drop all combining marks."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(raw: str) -> str:
    """Canonicalize a text fragment.

    Lowercases, removes accents, collapses every run of non-alphanumeric
    characters to a single space, drops filler tokens, and trims.
    Applying it twice yields the same result as applying it once.

    Args:
        raw: Text as returned by an OCR backend.

    Returns:
        The normalized fragment, possibly empty.
    """
    folded = _NON_ALNUM.sub(" ", strip_diacritics(raw.lower()))
    tokens = [tok for tok in folded.split() if tok not in FILLER_TOKENS]
    return " ".join(tokens)


def normalize_lines(text: str) -> str:
    """Normalize a block line by line, dropping lines that end up empty."""
    lines = (normalize(line) for line in text.splitlines())
    return "\n".join(line for line in lines if line)
