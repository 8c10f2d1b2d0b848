"""
Backend field mapper.

Maps semantic Buyer / Property / Match / cache-entry attributes to the
Airtable column names. This table is the only place column names live;
renaming a column in the base means changing one line here.
"""

from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------
# Buyers table
# ---------------------------------------------------------------

BUYER_FIELDS = {
    'contact_id': 'Contact ID',
    'first_name': 'First Name',
    'last_name': 'Last Name',
    'email': 'Email',
    'monthly_income': 'Monthly Income',
    'monthly_liabilities': 'Monthly Liabilities',
    'down_payment': 'Downpayment',
    'desired_beds': 'No. of Bedrooms',
    'desired_baths': 'No. of Bath',
    'city': 'City',
    'location': 'Location',
    'buyer_type': 'Buyer Type',
    'preferred_zip_codes': 'Preferred Zip Codes',
}

# ---------------------------------------------------------------
# Properties table
# ---------------------------------------------------------------

PROPERTY_FIELDS = {
    'property_code': 'Property Code',
    'opportunity_id': 'Opportunity ID',
    'address': 'Address',
    'city': 'City',
    'state': 'State',
    'price': 'Price',
    'beds': 'Beds',
    'baths': 'Baths',
    'sqft': 'Sqft',
    'stage': 'Stage',
    'zip_code': 'Zip Code',
}

# ---------------------------------------------------------------
# Property-Buyer Matches table
# 'buyer' and 'property' are linked-record columns (lists of record ids)
# ---------------------------------------------------------------

MATCH_FIELDS = {
    'buyer': 'Contact ID',
    'property': 'Property Code',
    'score': 'Match Score',
    'distance': 'Distance (miles)',
    'reasoning': 'Match Notes',
    'status': 'Match Status',
    'is_priority': 'Is Priority',
}

# ---------------------------------------------------------------
# System Cache table
# ---------------------------------------------------------------

CACHE_FIELDS = {
    'cache_key': 'cache_key',
    'data': 'data',
    'record_count': 'record_count',
    'source_count': 'source_count',
    'last_synced': 'last_synced',
    'version': 'version',
    'is_valid': 'is_valid',
}

# Everything except the (potentially large) serialized snapshot
CACHE_METADATA_COLUMNS = [col for name, col in CACHE_FIELDS.items() if name != 'data']


def columns(mapping: Dict[str, str]) -> List[str]:
    """All backend columns for a mapping, in declaration order."""
    return list(mapping.values())


def read(fields: Dict[str, Any], mapping: Dict[str, str], name: str, default: Optional[Any] = None) -> Any:
    """Read a semantic attribute from a record's raw fields dict."""
    value = fields.get(mapping[name])
    return default if value is None else value


def read_links(fields: Dict[str, Any], mapping: Dict[str, str], name: str) -> List[str]:
    """Read a linked-record column as a list of record ids."""
    value = fields.get(mapping[name]) or []
    if isinstance(value, str):
        return [value]
    return list(value)


def write(mapping: Dict[str, str], values: Dict[str, Any]) -> Dict[str, Any]:
    """Translate semantic attribute values to backend columns, skipping None."""
    return {mapping[name]: value for name, value in values.items() if value is not None}
