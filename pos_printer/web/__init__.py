"""
Web module for the POS Printer service.

Exposes blueprints for:
- Print, preview and sample test endpoints: api_bp
- Service info, status, printers, queue and health: status_bp
- Spooler job status and cancellation: jobs_bp
"""

from .api import api_bp
from .jobs import jobs_bp
from .status import status_bp

__all__ = ["api_bp", "jobs_bp", "status_bp"]
