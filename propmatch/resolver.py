"""
Relationship Resolver

Given a page of buyers (or properties), fetches every match that references
any of them and every counterpart entity those matches reference, using a
fixed number of backend requests regardless of page size:

    1. one page of primary entities
    2. one OR(FIND(...)) query for all their matches
    3. one OR(RECORD_ID()=...) lookup for all counterparts

A failed match or counterpart fetch degrades the result (empty matches or
unresolved counterparts) instead of failing the page.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from propmatch.config import Tables
from propmatch.exceptions import RecordStoreError, ValidationError
from propmatch.field_map import BUYER_FIELDS, MATCH_FIELDS
from propmatch.models import Buyer, Match, Property
from propmatch.store.formulas import field_equals, links_any

BUYER = 'buyer'
PROPERTY = 'property'

ENTITY_ALIASES = {
    'buyer': BUYER,
    'buyers': BUYER,
    'property': PROPERTY,
    'properties': PROPERTY,
}

Entity = Union[Buyer, Property]


def normalize_entity_type(entity_type: Optional[str]) -> str:
    """Map 'buyers'/'properties' (and singulars) to BUYER/PROPERTY."""
    kind = ENTITY_ALIASES.get((entity_type or '').strip().lower())
    if not kind:
        raise ValidationError('type parameter must be "buyers" or "properties"', fields=['type'])
    return kind


@dataclass
class Resolution:
    """Output of one resolve() call."""
    entity_type: str
    primary: List[Entity] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    counterparts: Dict[str, Entity] = field(default_factory=dict)
    next_offset: Optional[str] = None
    request_count: int = 0
    elapsed_ms: int = 0
    warnings: List[str] = field(default_factory=list)


class Resolver:
    """Resolves buyer/property pages together with their matches."""

    def __init__(self, store, tables: Optional[Tables] = None, logger: Optional[logging.Logger] = None):
        self.store = store
        self.tables = tables or Tables()
        self.logger = logger or logging.getLogger(__name__)

    def _sides(self, kind: str):
        """(primary table, model, link column, counterpart table, counterpart model)"""
        if kind == BUYER:
            return (self.tables.buyers, Buyer, MATCH_FIELDS['buyer'],
                    self.tables.properties, Property)
        return (self.tables.properties, Property, MATCH_FIELDS['property'],
                self.tables.buyers, Buyer)

    def resolve(self, entity_type: str, limit: int = 50, offset: Optional[str] = None) -> Resolution:
        """
        Resolve one page of primary entities.

        Args:
            entity_type: 'buyers' or 'properties' (singular accepted)
            limit: Page size
            offset: Opaque cursor from a previous page's next_offset

        Returns:
            Resolution with the page, its matches and a counterpart lookup
        """
        kind = normalize_entity_type(entity_type)
        table, model = self._sides(kind)[:2]
        start = time.monotonic()
        requests_before = self.store.request_count

        self.logger.info(f"Fetching {table} with limit={limit}, offset={offset or ''}")
        page = self.store.list_records(table, page_size=limit, offset=offset)
        primary = [model.from_record(r) for r in page.records]

        resolution = Resolution(entity_type=kind, primary=primary)
        if primary:
            resolution.next_offset = page.offset
            self._resolve_related(resolution)

        resolution.request_count = self.store.request_count - requests_before
        resolution.elapsed_ms = int((time.monotonic() - start) * 1000)
        self.logger.info(
            f"Resolved {len(resolution.primary)} {table}, {len(resolution.matches)} matches, "
            f"{len(resolution.counterparts)} counterparts in {resolution.request_count} requests "
            f"({resolution.elapsed_ms}ms)"
        )
        return resolution

    def resolve_buyer_by_contact(self, contact_id: str) -> Optional[Resolution]:
        """Resolve a single buyer looked up by external contact id."""
        start = time.monotonic()
        requests_before = self.store.request_count

        record = self.store.find_first(
            self.tables.buyers, field_equals(BUYER_FIELDS['contact_id'], contact_id)
        )
        if not record:
            self.logger.info(f"No buyer found with contact id {contact_id}")
            return None

        resolution = Resolution(entity_type=BUYER, primary=[Buyer.from_record(record)])
        self._resolve_related(resolution)
        resolution.request_count = self.store.request_count - requests_before
        resolution.elapsed_ms = int((time.monotonic() - start) * 1000)
        return resolution

    def _resolve_related(self, resolution: Resolution) -> None:
        """Fill matches and counterparts for resolution.primary in place."""
        _, _, link, counterpart_table, counterpart_model = self._sides(resolution.entity_type)
        primary_ids = [e.record_id for e in resolution.primary]

        try:
            records = self.store.query(self.tables.matches, formula=links_any(link, primary_ids))
            resolution.matches = [Match.from_record(r) for r in records]
        except RecordStoreError as e:
            message = f"Failed to fetch matches: {e}"
            self.logger.warning(message)
            resolution.warnings.append(message)
            return

        if resolution.entity_type == BUYER:
            counterpart_ids = [pid for m in resolution.matches for pid in m.property_ids]
        else:
            counterpart_ids = [bid for m in resolution.matches for bid in m.buyer_ids]
        counterpart_ids = list(dict.fromkeys(counterpart_ids))

        if not counterpart_ids:
            return

        self.logger.debug(f"Batch fetching {len(counterpart_ids)} records from {counterpart_table}")
        try:
            records = self.store.fetch_by_ids(counterpart_table, counterpart_ids)
        except RecordStoreError as e:
            message = f"Failed to fetch {counterpart_table}: {e}"
            self.logger.warning(message)
            resolution.warnings.append(message)
            return

        resolution.counterparts = {
            entity.record_id: entity
            for entity in (counterpart_model.from_record(r) for r in records)
        }
        missing = len(counterpart_ids) - len(resolution.counterparts)
        if missing > 0:
            self.logger.warning(f"{missing} referenced {counterpart_table} records could not be resolved")
