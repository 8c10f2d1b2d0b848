"""
Cache Coordinator

Keeps one derived snapshot per source collection (properties, buyers,
matches) in the System Cache table and answers staleness questions.

Lifecycle per cache key:
    Empty -> Valid        first sync creates the row (version 1)
    Valid -> Stale        live count differs from record_count, is_valid
                          cleared, or last_synced older than the optional
                          freshness window
    Stale -> Valid        resync overwrites the row (version + 1)

The cache is never a source of truth. Concurrent syncs race and the last
write wins.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from propmatch.config import Tables
from propmatch.exceptions import CacheNotFound, RecordStoreError, ValidationError
from propmatch.field_map import (
    BUYER_FIELDS, CACHE_FIELDS, CACHE_METADATA_COLUMNS, MATCH_FIELDS, PROPERTY_FIELDS, columns,
)
from propmatch.models import Buyer, CacheEntry, Match, Property
from propmatch.store.formulas import any_of, field_equals

PROPERTIES = 'properties'
BUYERS = 'buyers'
MATCHES = 'matches'
COLLECTIONS = (PROPERTIES, BUYERS, MATCHES)
SYNC_ALL = 'all'

# Single cheap column requested per record when counting a table
COUNT_FIELDS = {
    PROPERTIES: PROPERTY_FIELDS['property_code'],
    BUYERS: BUYER_FIELDS['contact_id'],
    MATCHES: MATCH_FIELDS['score'],
}

# status() key for the "new records available" figure of each collection
NEW_AVAILABLE_KEYS = {
    PROPERTIES: 'newPropertiesAvailable',
    BUYERS: 'newBuyersAvailable',
    MATCHES: 'newMatchesAvailable',
}

EMPTY_SNAPSHOT = {'records': []}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_fresh(last_synced: Optional[str], max_age_hours: Optional[float], now: Optional[datetime] = None) -> bool:
    """
    Freshness policy for consumers that enforce a window.

    No window means every snapshot is fresh. A missing or unparsable
    timestamp is never fresh when a window is set.
    """
    if max_age_hours is None:
        return True
    synced = parse_timestamp(last_synced)
    if synced is None:
        return False
    age_hours = ((now or utc_now()) - synced).total_seconds() / 3600
    return age_hours < max_age_hours


def parse_snapshot(raw: Optional[str], logger: logging.Logger, cache_key: str = '') -> Dict[str, Any]:
    """Deserialize a stored snapshot; malformed payloads read as empty."""
    if not raw:
        return dict(EMPTY_SNAPSHOT)
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error(f"Failed to parse cache data for {cache_key}: {e}")
        return dict(EMPTY_SNAPSHOT)
    if not isinstance(data, dict):
        logger.error(f"Cache data for {cache_key} is not an object, ignoring it")
        return dict(EMPTY_SNAPSHOT)
    return data


def build_properties_snapshot(records: List[dict]) -> Dict[str, Any]:
    return {'records': [dict(Property.from_record(r).to_dict(), id=r['id']) for r in records]}


def build_buyers_snapshot(records: List[dict]) -> Dict[str, Any]:
    return {'records': [dict(Buyer.from_record(r).to_dict(), id=r['id']) for r in records]}


def build_matches_snapshot(records: List[dict]) -> Dict[str, Any]:
    """Match snapshot plus buyer/property indexes (record id -> match ids)."""
    buyer_index: Dict[str, List[str]] = {}
    property_index: Dict[str, List[str]] = {}
    snapshots = []

    for record in records:
        match = Match.from_record(record)
        if match.buyer_id:
            buyer_index.setdefault(match.buyer_id, []).append(match.record_id)
        if match.property_id:
            property_index.setdefault(match.property_id, []).append(match.record_id)
        snapshots.append(match.to_snapshot())

    return {
        'records': snapshots,
        'buyerIndex': buyer_index,
        'propertyIndex': property_index,
    }


SNAPSHOT_BUILDERS: Dict[str, Callable[[List[dict]], Dict[str, Any]]] = {
    PROPERTIES: build_properties_snapshot,
    BUYERS: build_buyers_snapshot,
    MATCHES: build_matches_snapshot,
}

SYNC_FIELDS = {
    PROPERTIES: columns(PROPERTY_FIELDS),
    BUYERS: columns(BUYER_FIELDS),
    MATCHES: columns(MATCH_FIELDS),
}


class CacheCoordinator:
    """Maintains the System Cache table."""

    def __init__(
        self,
        store,
        tables: Optional[Tables] = None,
        logger: Optional[logging.Logger] = None,
        invalidate_on_divergence: bool = True,
        max_age_hours: Optional[float] = None,
        count_page_size: int = 100,
        max_workers: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.tables = tables or Tables()
        self.logger = logger or logging.getLogger(__name__)
        self.invalidate_on_divergence = invalidate_on_divergence
        self.max_age_hours = max_age_hours
        self.count_page_size = count_page_size
        self.max_workers = max_workers
        self.clock = clock

    @classmethod
    def from_config(cls, store, config, **kwargs) -> 'CacheCoordinator':
        return cls(
            store,
            tables=config.TABLES,
            invalidate_on_divergence=config.INVALIDATE_ON_DIVERGENCE,
            max_age_hours=config.CACHE_MAX_AGE_HOURS,
            count_page_size=config.COUNT_PAGE_SIZE,
            **kwargs,
        )

    def _source_table(self, cache_key: str) -> str:
        return {
            PROPERTIES: self.tables.properties,
            BUYERS: self.tables.buyers,
            MATCHES: self.tables.matches,
        }[cache_key]

    # ------------------------------------------------------------------
    # Cache table access
    # ------------------------------------------------------------------

    def find_entry(self, cache_key: str, metadata_only: bool = False) -> Optional[CacheEntry]:
        record = self.store.find_first(
            self.tables.cache,
            field_equals(CACHE_FIELDS['cache_key'], cache_key),
            fields=CACHE_METADATA_COLUMNS if metadata_only else None,
        )
        return CacheEntry.from_record(record) if record else None

    def load_metadata(self) -> Dict[str, CacheEntry]:
        """Metadata of the collection entries, without the snapshot payloads."""
        formula = any_of(field_equals(CACHE_FIELDS['cache_key'], key) for key in COLLECTIONS)
        records = self.store.query(self.tables.cache, formula=formula, fields=CACHE_METADATA_COLUMNS)
        entries = {}
        for record in records:
            entry = CacheEntry.from_record(record)
            entries.setdefault(entry.cache_key, entry)
        return entries

    def source_counts(self) -> Dict[str, int]:
        """Live record counts of the three source tables, fetched concurrently."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                key: executor.submit(
                    self.store.count,
                    self._source_table(key),
                    field=COUNT_FIELDS[key],
                    page_size=self.count_page_size,
                )
                for key in COLLECTIONS
            }
            return {key: future.result() for key, future in futures.items()}

    def invalidate(self, cache_key: str, entry: Optional[CacheEntry] = None) -> bool:
        """Mark a snapshot invalid. Returns False when there is nothing to invalidate."""
        entry = entry or self.find_entry(cache_key, metadata_only=True)
        if not entry or not entry.record_id:
            return False
        self.store.update_record(self.tables.cache, entry.record_id, {CACHE_FIELDS['is_valid']: False})
        entry.is_valid = False
        self.logger.info(f"Invalidated cache entry {cache_key}")
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """
        Per-collection cache metadata compared with live source counts.

        Entries whose record_count no longer matches the live count are
        marked invalid as a side effect (when invalidate_on_divergence).
        """
        entries = self.load_metadata()
        counts = self.source_counts()
        result: Dict[str, Any] = {}

        for key in COLLECTIONS:
            entry = entries.get(key)
            source_count = counts[key]

            if entry is None:
                meta = {
                    'cacheKey': key,
                    'recordCount': 0,
                    'sourceCount': source_count,
                    'lastSynced': None,
                    'version': 0,
                    'isValid': False,
                }
            else:
                if (self.invalidate_on_divergence and entry.is_valid
                        and source_count != entry.record_count):
                    self.logger.info(
                        f"Cache {key} diverged from source ({entry.record_count} cached, {source_count} live)"
                    )
                    self.invalidate(key, entry)
                meta = entry.metadata()
                meta['sourceCount'] = source_count

            meta['isFresh'] = is_fresh(meta['lastSynced'], self.max_age_hours, now=self.clock())
            result[key] = meta
            result[NEW_AVAILABLE_KEYS[key]] = max(0, source_count - meta['recordCount'])

        result['isStale'] = any(
            not result[key]['isValid'] or not result[key]['isFresh'] or result[NEW_AVAILABLE_KEYS[key]] > 0
            for key in COLLECTIONS
        )
        result['lastChecked'] = to_timestamp(self.clock())
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_cached_data(self, cache_key: str) -> Dict[str, Any]:
        """
        Return the stored snapshot for cache_key.

        Raises:
            CacheNotFound: nothing was ever stored under cache_key

        Invalid or expired collection snapshots are resynced before being
        returned. If the resync fails the old snapshot is returned with
        isValid false.
        """
        entry = self.find_entry(cache_key)
        if entry is None:
            raise CacheNotFound(cache_key)

        expired = not is_fresh(entry.last_synced, self.max_age_hours, now=self.clock())
        if cache_key in COLLECTIONS and (not entry.is_valid or expired):
            self.logger.info(f"Cache {cache_key} is stale, resyncing before read")
            try:
                entry = self.sync_collection(cache_key)
            except RecordStoreError as e:
                self.logger.warning(f"Resync of {cache_key} failed, serving stale snapshot: {e}")
                entry.is_valid = False

        data = parse_snapshot(entry.data, self.logger, cache_key)
        return {
            'cacheKey': entry.cache_key,
            'data': data,
            'recordCount': entry.record_count,
            'sourceCount': entry.source_count,
            'lastSynced': entry.last_synced,
            'version': entry.version,
            'isValid': entry.is_valid,
            'airtableRecordId': entry.record_id,
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_snapshot(
        self,
        cache_key: str,
        data: Dict[str, Any],
        record_count: int,
        source_count: Optional[int] = None,
    ) -> CacheEntry:
        """Create or overwrite the snapshot for cache_key, bumping its version."""
        existing = self.find_entry(cache_key, metadata_only=True)
        entry = CacheEntry(
            cache_key=cache_key,
            data=json.dumps(data),
            record_count=record_count,
            source_count=record_count if source_count is None else source_count,
            last_synced=to_timestamp(self.clock()),
            version=existing.version + 1 if existing else 1,
            is_valid=True,
        )

        if existing and existing.record_id:
            self.logger.info(f"Updating cache entry {cache_key} (version {entry.version})")
            self.store.update_record(self.tables.cache, existing.record_id, entry.to_fields())
            entry.record_id = existing.record_id
        else:
            self.logger.info(f"Creating cache entry {cache_key}")
            record = self.store.create_record(self.tables.cache, entry.to_fields())
            entry.record_id = record.get('id')
        return entry

    def sync_collection(self, cache_key: str) -> CacheEntry:
        """Rebuild the snapshot of one source collection from the live table."""
        table = self._source_table(cache_key)
        self.logger.info(f"Syncing {cache_key} cache from {table}...")
        records = self.store.query(table, fields=SYNC_FIELDS[cache_key])
        data = SNAPSHOT_BUILDERS[cache_key](records)
        entry = self.save_snapshot(cache_key, data, len(records))
        self.logger.info(f"Synced {len(records)} {cache_key} (version {entry.version})")
        return entry

    def sync(self, cache_key: str) -> Dict[str, Dict[str, Any]]:
        """Sync one collection, or all of them for cache_key 'all'."""
        if cache_key == SYNC_ALL:
            keys = COLLECTIONS
        elif cache_key in COLLECTIONS:
            keys = (cache_key,)
        else:
            raise ValidationError(
                'Invalid cacheKey. Use: properties, buyers, matches, or all', fields=['cacheKey']
            )

        results = {}
        for key in keys:
            entry = self.sync_collection(key)
            results[key] = {'recordCount': entry.record_count, 'version': entry.version}
        return results
