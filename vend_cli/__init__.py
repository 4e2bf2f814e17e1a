"""
Vend bulk data tool

A CLI and client library for bulk work against a Vend (Lightspeed Retail
X-Series) store:
- Export customers, products, sales, gift cards, store credits, suppliers,
  users, outlets, registers and the audit log to CSV
- Delete or create records in bulk from CSV/JSON input, with a failure report

The client retries network failures with a growing backoff and honours the
API's rate limiting.
"""

__version__ = "1.0.0"

from .config import ClientConfig, Settings
from .clients import VendClient, VendAPIError

__all__ = ["ClientConfig", "Settings", "VendClient", "VendAPIError"]
