"""
Record store package public API
"""

from .client import AirtableClient, RecordPage
from . import formulas

__all__ = [
    "AirtableClient",
    "RecordPage",
    "formulas",
]
