"""Comparison port implemented by AI matching services."""

from abc import ABC, abstractmethod

from .models import ComparisonResult


class ComparisonPort(ABC):
    """Abstract capability: compare two document texts line by line."""

    @abstractmethod
    async def compare(
        self,
        invoice_text: str,
        delivery_order_text: str,
        invoice_filename: str,
        delivery_order_filename: str,
    ) -> ComparisonResult:
        """Produce a structured comparison of two documents.

        Raises:
            ComparisonError: If no backend produced a usable response.
        """
