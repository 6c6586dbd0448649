"""
Receipt documents for the POS Printer service.

- models: pydantic models for the five receipt variants and ReceiptType
- samples: fixed sample documents used by the test-print endpoints
"""

from .models import *
from .samples import *
