"""
Printing subsystem for the POS Printer service.

This package groups printing-related functionality:

- render: receipt layout, ESC/POS encoding and preview transcripts
- spooler: CUPS and simulated spooler adapters
- manager: printer selection, offline queue, drain passes and status

For convenience, common functions are re-exported for easy import.
"""

from .render import *
from .spooler import *
from .manager import *
