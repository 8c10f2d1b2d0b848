"""
propmatch

Buyer-property matching API for the real estate operations dashboard.
Reads buyers, properties and match records from Airtable, joins them into
dashboard views without per-entity request fan-out, and keeps a derived
snapshot cache in the System Cache table.
"""

__version__ = "0.1.0"

from .assembler import aggregate
from .cache import CacheCoordinator
from .resolver import Resolver
from .store import AirtableClient

__all__ = ["AirtableClient", "CacheCoordinator", "Resolver", "aggregate"]
