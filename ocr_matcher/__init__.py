"""OCR Matcher.

Batch reconciliation of invoices against delivery orders: scanned
documents are OCR'd, compared line by line with a large language model,
and the resulting comparisons are persisted per document pair.
"""
