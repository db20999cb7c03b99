"""
Accurate Tax Gateway service.

Key Features:
- Sales invoice listings with tax category, taxable base (DPP) and tax
  amount resolved from sparse Accurate detail records
- Detail calls fanned out in paced, bounded batches with fixed-delay retry
- Partial results: a record whose detail cannot be fetched is returned as
  FETCH_FAILED instead of failing the listing
- Lodging and food-service tax views for invoices and receipts
"""

__version__ = "1.0.0"

SERVICE_NAME = "accurate-tax-gateway"
SERVICE_VERSION = __version__

__all__ = [
    "SERVICE_NAME",
    "SERVICE_VERSION",
]
