"""Temporary storage for uploaded documents."""

import uuid
from dataclasses import dataclass
from pathlib import Path

from ocr_matcher.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class UploadedFile:
    """An uploaded document saved to a temporary location."""

    name: str
    path: Path
    size_bytes: int


def save_upload(content: bytes, original_name: str, temp_dir: Path) -> UploadedFile:
    """Write uploaded bytes to a uniquely named temporary file.

    Args:
        content: Raw file bytes.
        original_name: Filename as supplied by the client.
        temp_dir: Directory for temporary uploads; created if missing.

    Returns:
        Handle pointing at the saved file.
    """
    temp_dir = Path(temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    safe_name = Path(original_name).name or "document"
    path = temp_dir / f"{uuid.uuid4().hex}-{safe_name}"
    path.write_bytes(content)
    logger.debug("Saved upload %s to %s", original_name, path)
    return UploadedFile(name=original_name, path=path, size_bytes=len(content))


def cleanup_files(paths: list[Path]) -> None:
    """Delete temporary files, logging instead of raising on failure."""
    for path in paths:
        path = Path(path)
        try:
            if path.exists():
                path.unlink()
                logger.debug("Removed temporary file %s", path)
            else:
                logger.warning("Temporary file %s no longer exists", path)
        except OSError as exc:
            logger.error("Failed to remove temporary file %s: %s", path, exc)
