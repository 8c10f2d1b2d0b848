"""Blueprints and per-request helpers."""

from typing import Optional

from flask import current_app

from propmatch.exceptions import ValidationError
from propmatch.store import AirtableClient


def get_config():
    return current_app.config['PROPMATCH_CONFIG']


def get_store():
    """Record store for this request. A fresh client per request keeps handlers stateless."""
    store = current_app.config.get('PROPMATCH_STORE')
    if store is not None:
        return store
    return AirtableClient.from_config(get_config())


def parse_limit(value: Optional[str], default: int, maximum: int) -> int:
    """Parse a positive integer page size, capped at maximum."""
    if value in (None, ''):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError('limit must be a positive integer', fields=['limit'])
    if limit < 1:
        raise ValidationError('limit must be a positive integer', fields=['limit'])
    return min(limit, maximum)


def parse_flag(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'score')
