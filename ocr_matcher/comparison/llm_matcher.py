"""LLM-backed comparison of invoices against delivery orders.

Sends both OCR texts to a chat-completion model in JSON mode, retrying
once on a designated fallback model when the primary backend fails.
"""

import json
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from ocr_matcher.errors import ComparisonError
from ocr_matcher.utils.config import ComparisonConfig, read_api_key
from ocr_matcher.utils.logger import get_logger

from .base import ComparisonPort
from .models import ComparisonResult, parse_comparison_payload

logger = get_logger(__name__)

COMPARISON_PROMPT = """\
You will receive two raw text blocks: one from an invoice and one from a
delivery order.

TASK
1) Extract the product lines from each text; ignore headers and footers.
2) Normalize names, sizes (convert to ML/GR), quantities and prices.
   Pack tokens in a name (4P, 6P, 12P) are pieces per pack.
3) Match items one-to-one. Never match across brands, variants
   (CREAM SODA, SUGAR FREE, LIGHT, REGULAR) or sizes.
4) Every parsed line must appear in exactly one row; an item without a
   partner gets a row with the other side empty and status "error".

STATUS
- "match": same product and equal quantities after conversions.
- "warning": same product but quantities differ (explain in note).
- "error": no valid partner.

Return ONLY this JSON object:
{{
  "items": [{{"productName": "", "invoiceValue": "", "deliveryOrderValue": "",
              "status": "match|warning|error", "priceMatch": "match|N/A|error",
              "price": "", "note": ""}}],
  "metadata": [{{"field": "", "invoiceValue": "", "deliveryOrderValue": "",
                 "status": "match|warning|error", "priceMatch": "match|N/A|error"}}],
  "summary": {{"matches": 0, "warnings": 0, "errors": 0}}
}}

INVOICE TEXT:
{invoice_text}

DELIVERY ORDER TEXT:
{delivery_order_text}
"""


def clean_json_response(content: str) -> str:
    """Remove markdown code fences around a JSON response."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


class LLMComparisonService(ComparisonPort):
    """Comparison service backed by an OpenAI-compatible chat API.

    Args:
        config: Model names, fallback switch, timeout and temperature.
        client: Optional preconfigured ``AsyncOpenAI`` client.
    """

    def __init__(
        self, config: ComparisonConfig, client: AsyncOpenAI | None = None
    ) -> None:
        self.config = config
        self.client = client or AsyncOpenAI(
            api_key=read_api_key(config.api_key_env),
            base_url=config.base_url,
            timeout=config.timeout_s,
        )

    async def compare(
        self,
        invoice_text: str,
        delivery_order_text: str,
        invoice_filename: str,
        delivery_order_filename: str,
    ) -> ComparisonResult:
        if not invoice_text.strip() and not delivery_order_text.strip():
            raise ComparisonError(
                "Both documents are empty, nothing to compare",
                {
                    "invoice": invoice_filename,
                    "delivery_order": delivery_order_filename,
                },
            )

        prompt = COMPARISON_PROMPT.format(
            invoice_text=invoice_text,
            delivery_order_text=delivery_order_text,
        )
        payload = await self._request_with_fallback(prompt)
        result = parse_comparison_payload(
            payload, invoice_filename, delivery_order_filename
        )
        logger.info(
            "Comparison %s vs %s: %d matches, %d warnings, %d errors",
            invoice_filename,
            delivery_order_filename,
            result.summary.matches,
            result.summary.warnings,
            result.summary.errors,
        )
        return result

    async def _request_with_fallback(self, prompt: str) -> dict[str, Any]:
        try:
            return await self._request(self.config.primary_model, prompt)
        except (OpenAIError, ValueError) as exc:
            logger.error(
                "Error with primary model (%s): %s", self.config.primary_model, exc
            )
            if not self.config.use_fallback:
                raise ComparisonError(f"AI comparison failed: {exc}") from exc

        logger.info("Falling back to %s", self.config.fallback_model)
        try:
            return await self._request(self.config.fallback_model, prompt)
        except (OpenAIError, ValueError) as exc:
            logger.error(
                "Error with fallback model (%s): %s", self.config.fallback_model, exc
            )
            raise ComparisonError(f"AI comparison failed: {exc}") from exc

    async def _request(self, model: str, prompt: str) -> dict[str, Any]:
        """Run one completion and decode its JSON body.

        Raises:
            OpenAIError: On any API-level failure.
            ValueError: If the model did not return a JSON object.
        """
        response = await self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
            temperature=self.config.temperature,
        )
        content = response.choices[0].message.content or "{}"
        payload = json.loads(clean_json_response(content))
        if not isinstance(payload, dict):
            raise ValueError(
                f"Expected a JSON object from {model}, got {type(payload).__name__}"
            )
        return payload
