"""Hosted OCR backend speaking a file-upload + OCR-job HTTP API.

The document is uploaded first, then an OCR request references the
returned file id; the response carries one markdown block per page.
"""

from pathlib import Path
from typing import Any

import httpx

from ocr_matcher.utils.config import OCRConfig, read_api_key
from ocr_matcher.utils.logger import get_logger

from .base import ExtractionOutcome, TextExtractionPort, join_fragments

logger = get_logger(__name__)


def pages_to_fragments(payload: dict[str, Any]) -> list[str]:
    """Pull the per-page text out of an OCR response payload.

    Args:
        payload: Decoded JSON body of the OCR call.

    Returns:
        Text lines in page order; empty if the payload has no pages.
    """
    fragments: list[str] = []
    for page in payload.get("pages") or []:
        content = page.get("markdown") or page.get("text") or ""
        fragments.extend(content.splitlines())
    return fragments


class RemoteOCRExtractor(TextExtractionPort):
    """Text extraction through a hosted OCR service.

    Args:
        config: OCR configuration (service URL, model, key variable,
            timeout and normalization flag).
        client: Optional preconfigured ``httpx.AsyncClient``; one is
            created per call otherwise.
    """

    name = "remote"

    def __init__(
        self, config: OCRConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.api_key = read_api_key(config.api_key_env)
        self._client = client

    async def extract(self, path: Path) -> ExtractionOutcome:
        path = Path(path)
        if not path.exists():
            logger.error("File %s does not exist", path)
            return ExtractionOutcome(
                error=f"File does not exist or is not accessible: {path}"
            )

        try:
            if self._client is not None:
                payload = await self._run(self._client, path)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_s) as client:
                    payload = await self._run(client, path)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "OCR service returned %d for %s", exc.response.status_code, path.name
            )
            return ExtractionOutcome(
                error=f"OCR Error: HTTP {exc.response.status_code} from OCR service"
            )
        except (httpx.HTTPError, OSError, ValueError, KeyError) as exc:
            logger.error("OCR extraction error for %s: %s", path.name, exc)
            return ExtractionOutcome(error=f"OCR Error: {exc}")

        text = join_fragments(pages_to_fragments(payload), self.config.normalize_text)
        if not text:
            logger.warning("No text extracted from %s", path.name)
            return ExtractionOutcome(error="OCR returned no usable text")

        logger.info("Extracted %d characters from %s", len(text), path.name)
        return ExtractionOutcome(text=text)

    async def _run(self, client: httpx.AsyncClient, path: Path) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        base_url = self.config.remote_url.rstrip("/")

        upload = await client.post(
            f"{base_url}/files",
            headers=headers,
            data={"purpose": "ocr"},
            files={"file": (path.name, path.read_bytes())},
        )
        upload.raise_for_status()
        file_id = upload.json()["id"]
        logger.debug("Uploaded %s as %s", path.name, file_id)

        response = await client.post(
            f"{base_url}/ocr",
            headers=headers,
            json={
                "model": self.config.remote_model,
                "document": {"type": "file", "file_id": file_id},
            },
        )
        response.raise_for_status()
        return response.json()
