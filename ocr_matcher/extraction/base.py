"""Text extraction port shared by all OCR backends.

Backends never raise from ``extract``: every failure is reported as an
``ExtractionOutcome`` carrying an error message, which the batch
pipeline turns into a per-pair failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from ocr_matcher.text.normalizer import normalize


@dataclass
class ExtractionOutcome:
    """Text extracted from one file, or the reason it could not be."""

    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TextExtractionPort(ABC):
    """Abstract OCR capability: file in, text or error out."""

    name: str = "base"

    @abstractmethod
    async def extract(self, path: Path) -> ExtractionOutcome:
        """Extract the text of a document file.

        Args:
            path: Location of the uploaded document on disk.

        Returns:
            The extracted text, or an outcome with ``error`` set.
        """


def join_fragments(fragments: list[str], normalize_text: bool = True) -> str:
    """Concatenate OCR fragments one per line.

    Args:
        fragments: Text blocks or lines in reading order.
        normalize_text: Canonicalize each fragment before joining.

    Returns:
        Newline-joined text with empty fragments removed.
    """
    if normalize_text:
        parts = (normalize(fragment) for fragment in fragments)
    else:
        parts = (fragment.strip() for fragment in fragments)
    return "\n".join(part for part in parts if part)
