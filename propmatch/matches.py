"""
Match maintenance: bulk clear, duplicate-checked creation and scored
match generation.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from propmatch.config import Tables
from propmatch.exceptions import DuplicateRecordError, ValidationError
from propmatch.field_map import BUYER_FIELDS, MATCH_FIELDS, PROPERTY_FIELDS, columns
from propmatch.models import DEFAULT_MATCH_STATUS, Buyer, Match, Property
from propmatch.scoring import MatchScore, MatchScorer
from propmatch.store.formulas import all_of, field_equals, link_contains

logger = logging.getLogger(__name__)


def clear_all_matches(store, table: str, batch_size: int = 10, log: Optional[logging.Logger] = None) -> int:
    """
    Delete every record in the matches table.

    Ids are collected with a paginated scan that projects a single field,
    then deleted batch_size at a time (Airtable allows 10 per request).

    Returns:
        Number of records deleted
    """
    log = log or logger

    log.info("Fetching all match records...")
    record_ids = [r['id'] for r in store.query(table, fields=[MATCH_FIELDS['score']])]

    if not record_ids:
        log.info("No matches to delete")
        return 0

    log.info(f"Total records to delete: {len(record_ids)}")
    deleted = 0
    for i in range(0, len(record_ids), batch_size):
        batch = record_ids[i:i + batch_size]
        store.delete_records(table, batch)
        deleted += len(batch)
        log.debug(f"Deleted {deleted}/{len(record_ids)} records")

    log.info(f"Deleted all {deleted} matches")
    return deleted


def create_match(
    store,
    tables: Tables,
    buyer_id: Optional[str],
    property_id: Optional[str],
    score,
    distance: Optional[float] = None,
    reasoning: str = '',
    status: str = DEFAULT_MATCH_STATUS,
    is_priority: bool = False,
    log: Optional[logging.Logger] = None,
) -> Match:
    """
    Create a match between one buyer and one property.

    Raises:
        ValidationError: missing ids or score, or score outside 0-100
        DuplicateRecordError: the buyer/property pair already has a match
    """
    missing = [name for name, value in (
        ('buyerRecordId', buyer_id),
        ('propertyRecordId', property_id),
        ('score', score),
    ) if value in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    try:
        score = float(score)
    except (TypeError, ValueError):
        raise ValidationError('score must be a number', fields=['score'])
    if not 0 <= score <= 100:
        raise ValidationError('score must be between 0 and 100', fields=['score'])

    existing = store.find_first(
        tables.matches,
        all_of([
            link_contains(MATCH_FIELDS['buyer'], buyer_id),
            link_contains(MATCH_FIELDS['property'], property_id),
        ]),
        fields=[MATCH_FIELDS['score']],
    )
    if existing:
        raise DuplicateRecordError('Match already exists', record_id=existing['id'])

    match = Match(
        record_id='',
        buyer_ids=[buyer_id],
        property_ids=[property_id],
        score=score,
        distance=distance,
        reasoning=reasoning or '',
        status=status or DEFAULT_MATCH_STATUS,
        is_priority=bool(is_priority),
    )
    record = store.create_record(tables.matches, match.to_fields())
    (log or logger).info(f"Created match {record.get('id')} for buyer {buyer_id} / property {property_id}")
    return Match.from_record(record)


# ---------------------------------------------------------------
# Match generation
# ---------------------------------------------------------------

DEFAULT_MIN_SCORE = 30


@dataclass
class MatchRunStats:
    buyers_processed: int = 0
    properties_processed: int = 0
    matches_created: int = 0
    matches_updated: int = 0
    duplicates_skipped: int = 0
    priority_matches: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'buyersProcessed': self.buyers_processed,
            'propertiesProcessed': self.properties_processed,
            'matchesCreated': self.matches_created,
            'matchesUpdated': self.matches_updated,
            'duplicatesSkipped': self.duplicates_skipped,
            'priorityMatches': self.priority_matches,
        }


def validate_min_score(value) -> float:
    if value in (None, ''):
        return DEFAULT_MIN_SCORE
    try:
        min_score = float(value)
    except (TypeError, ValueError):
        raise ValidationError('minScore must be a number', fields=['minScore'])
    if not 0 <= min_score <= 100:
        raise ValidationError('minScore must be between 0 and 100', fields=['minScore'])
    return min_score


class MatchRunner:
    """
    Scores buyer/property pairs and writes the ones above min_score.

    Existing matches are loaded once per run and keyed by
    (buyer record id, property record id). A full run skips pairs that
    already have a match unless refresh_all is set; single-buyer and
    single-property runs rescore and update them.
    """

    def __init__(
        self,
        store,
        tables: Optional[Tables] = None,
        scorer: Optional[MatchScorer] = None,
        min_score: float = DEFAULT_MIN_SCORE,
        log: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.tables = tables or Tables()
        self.scorer = scorer or MatchScorer()
        self.min_score = min_score
        self.logger = log or logger

    def _buyers(self, formula: Optional[str] = None) -> List[Buyer]:
        records = self.store.query(self.tables.buyers, formula=formula, fields=columns(BUYER_FIELDS))
        return [Buyer.from_record(r) for r in records]

    def _properties(self, formula: Optional[str] = None) -> List[Property]:
        records = self.store.query(self.tables.properties, formula=formula, fields=columns(PROPERTY_FIELDS))
        return [Property.from_record(r) for r in records]

    def existing_pairs(self, formula: Optional[str] = None) -> Dict[Tuple[str, str], str]:
        """(buyer id, property id) -> match record id, for every stored match."""
        records = self.store.query(
            self.tables.matches,
            formula=formula,
            fields=[MATCH_FIELDS['buyer'], MATCH_FIELDS['property']],
        )
        pairs = {}
        for record in records:
            match = Match.from_record(record)
            for buyer_id in match.buyer_ids:
                for property_id in match.property_ids:
                    pairs.setdefault((buyer_id, property_id), match.record_id)
        self.logger.info(f"Loaded {len(pairs)} existing buyer/property pairs")
        return pairs

    def run_all(self, refresh_all: bool = False) -> MatchRunStats:
        """Match every buyer against every property."""
        buyers = self._buyers()
        properties = self._properties()
        self.logger.info(
            f"Running matching for {len(buyers)} buyers x {len(properties)} properties "
            f"(min score {self.min_score:g}, refresh_all={refresh_all})"
        )
        return self._run(buyers, properties, self.existing_pairs(), skip_existing=not refresh_all)

    def run_for_buyer(self, contact_id: str) -> Optional[Tuple[Buyer, MatchRunStats]]:
        """Match one buyer (by contact id) against every property; None if unknown."""
        buyers = self._buyers(field_equals(BUYER_FIELDS['contact_id'], contact_id))
        if not buyers:
            return None
        buyer = buyers[0]
        self.logger.info(f"Running matching for buyer {buyer.full_name or buyer.record_id}")
        existing = self.existing_pairs(link_contains(MATCH_FIELDS['buyer'], buyer.record_id))
        return buyer, self._run([buyer], self._properties(), existing, skip_existing=False)

    def run_for_property(self, property_code: str) -> Optional[Tuple[Property, MatchRunStats]]:
        """Match one property (by property code) against every buyer; None if unknown."""
        properties = self._properties(field_equals(PROPERTY_FIELDS['property_code'], property_code))
        if not properties:
            return None
        prop = properties[0]
        self.logger.info(f"Running matching for property {property_code}")
        existing = self.existing_pairs(link_contains(MATCH_FIELDS['property'], prop.record_id))
        return prop, self._run(self._buyers(), [prop], existing, skip_existing=False)

    def _run(
        self,
        buyers: List[Buyer],
        properties: List[Property],
        existing: Dict[Tuple[str, str], str],
        skip_existing: bool,
    ) -> MatchRunStats:
        stats = MatchRunStats(buyers_processed=len(buyers), properties_processed=len(properties))

        for buyer in buyers:
            for prop in properties:
                match_id = existing.get((buyer.record_id, prop.record_id))
                if match_id and skip_existing:
                    stats.duplicates_skipped += 1
                    continue

                result = self.scorer.score(buyer, prop)
                if result.score < self.min_score:
                    continue

                self._write(buyer, prop, result, match_id)
                if match_id:
                    stats.matches_updated += 1
                else:
                    stats.matches_created += 1
                if result.is_priority:
                    stats.priority_matches += 1

        self.logger.info(
            f"Matching complete: {stats.matches_created} created, {stats.matches_updated} updated, "
            f"{stats.duplicates_skipped} skipped"
        )
        return stats

    def _write(self, buyer: Buyer, prop: Property, result: MatchScore, match_id: Optional[str]) -> None:
        match = Match(
            record_id=match_id or '',
            buyer_ids=[buyer.record_id],
            property_ids=[prop.record_id],
            score=result.score,
            reasoning=result.notes(),
            is_priority=result.is_priority,
        )
        fields = match.to_fields()
        if match_id:
            # Links never change on rescoring
            fields.pop(MATCH_FIELDS['buyer'], None)
            fields.pop(MATCH_FIELDS['property'], None)
            self.store.update_record(self.tables.matches, match_id, fields)
        else:
            self.store.create_record(self.tables.matches, fields)
