"""Data models for the matching pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from propmatch import field_map
from propmatch.field_map import BUYER_FIELDS, CACHE_FIELDS, MATCH_FIELDS, PROPERTY_FIELDS

DEFAULT_MATCH_STATUS = 'Active'


def _split_list(value) -> List[str]:
    """Multi-select columns arrive as lists; text columns as 'a, b'."""
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(',') if part.strip()]
    return [str(part).strip() for part in value]


@dataclass
class Buyer:
    """Prospective purchaser profile."""
    record_id: str
    contact_id: str = ''
    first_name: str = ''
    last_name: str = ''
    email: str = ''
    monthly_income: Optional[float] = None
    monthly_liabilities: Optional[float] = None
    down_payment: Optional[float] = None
    desired_beds: Optional[float] = None
    desired_baths: Optional[float] = None
    city: Optional[str] = None
    location: Optional[str] = None
    buyer_type: Optional[str] = None
    preferred_zip_codes: List[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: dict) -> 'Buyer':
        """Create from an Airtable record."""
        fields = record.get('fields', {})
        get = lambda name, default=None: field_map.read(fields, BUYER_FIELDS, name, default)
        return cls(
            record_id=record['id'],
            contact_id=get('contact_id', ''),
            first_name=get('first_name', ''),
            last_name=get('last_name', ''),
            email=get('email', ''),
            monthly_income=get('monthly_income'),
            monthly_liabilities=get('monthly_liabilities'),
            down_payment=get('down_payment'),
            desired_beds=get('desired_beds'),
            desired_baths=get('desired_baths'),
            city=get('city'),
            location=get('location'),
            buyer_type=get('buyer_type'),
            preferred_zip_codes=_split_list(get('preferred_zip_codes')),
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contactId': self.contact_id,
            'recordId': self.record_id,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'email': self.email,
            'monthlyIncome': self.monthly_income,
            'monthlyLiabilities': self.monthly_liabilities,
            'downPayment': self.down_payment,
            'desiredBeds': self.desired_beds,
            'desiredBaths': self.desired_baths,
            'city': self.city,
            'location': self.location,
            'buyerType': self.buyer_type,
            'preferredZipCodes': self.preferred_zip_codes,
        }


@dataclass
class Property:
    """Real-estate listing. price/sqft stay None when unknown."""
    record_id: str
    property_code: str = ''
    opportunity_id: Optional[str] = None
    address: str = ''
    city: str = ''
    state: Optional[str] = None
    price: Optional[float] = None
    beds: float = 0
    baths: float = 0
    sqft: Optional[float] = None
    stage: Optional[str] = None
    zip_code: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> 'Property':
        """Create from an Airtable record."""
        fields = record.get('fields', {})
        get = lambda name, default=None: field_map.read(fields, PROPERTY_FIELDS, name, default)
        return cls(
            record_id=record['id'],
            property_code=get('property_code', ''),
            opportunity_id=get('opportunity_id'),
            address=get('address', ''),
            city=get('city', ''),
            state=get('state'),
            price=get('price'),
            beds=get('beds', 0),
            baths=get('baths', 0),
            sqft=get('sqft'),
            stage=get('stage'),
            zip_code=get('zip_code'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recordId': self.record_id,
            'propertyCode': self.property_code,
            'opportunityId': self.opportunity_id,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'price': self.price,
            'beds': self.beds,
            'baths': self.baths,
            'sqft': self.sqft,
            'stage': self.stage,
            'zipCode': self.zip_code,
        }


@dataclass
class Match:
    """Scored association between one buyer and one property."""
    record_id: str
    buyer_ids: List[str] = field(default_factory=list)
    property_ids: List[str] = field(default_factory=list)
    score: float = 0
    distance: Optional[float] = None
    reasoning: str = ''
    status: str = DEFAULT_MATCH_STATUS
    is_priority: bool = False

    @classmethod
    def from_record(cls, record: dict) -> 'Match':
        """Create from an Airtable record."""
        fields = record.get('fields', {})
        get = lambda name, default=None: field_map.read(fields, MATCH_FIELDS, name, default)
        return cls(
            record_id=record['id'],
            buyer_ids=field_map.read_links(fields, MATCH_FIELDS, 'buyer'),
            property_ids=field_map.read_links(fields, MATCH_FIELDS, 'property'),
            score=get('score', 0),
            distance=get('distance'),
            reasoning=get('reasoning', ''),
            status=get('status') or DEFAULT_MATCH_STATUS,
            is_priority=bool(get('is_priority', False)),
        )

    # The backend stores each reference as a one-element list
    @property
    def buyer_id(self) -> Optional[str]:
        return self.buyer_ids[0] if self.buyer_ids else None

    @property
    def property_id(self) -> Optional[str]:
        return self.property_ids[0] if self.property_ids else None

    def to_fields(self) -> Dict[str, Any]:
        """Backend columns for creating this match."""
        return field_map.write(MATCH_FIELDS, {
            'buyer': self.buyer_ids,
            'property': self.property_ids,
            'score': self.score,
            'distance': self.distance,
            'reasoning': self.reasoning,
            'status': self.status,
            'is_priority': self.is_priority,
        })

    def to_snapshot(self) -> Dict[str, Any]:
        """Compact form stored in the matches cache snapshot."""
        return {
            'id': self.record_id,
            'buyerRecordId': self.buyer_id or '',
            'propertyRecordId': self.property_id or '',
            'score': self.score,
            'distance': self.distance,
            'reasoning': self.reasoning,
            'status': self.status,
        }


@dataclass
class MatchView:
    """
    A match joined with both sides.

    `embed` names the counterpart that is serialized inline ('property' in
    buyer-centric views, 'buyer' in property-centric views). An unresolved
    counterpart is serialized as null, never dropped.
    """
    match: Match
    buyer: Optional[Buyer]
    property: Optional[Property]
    embed: str

    def to_dict(self) -> Dict[str, Any]:
        counterpart = self.property if self.embed == 'property' else self.buyer
        return {
            'id': self.match.record_id,
            'buyerRecordId': self.match.buyer_id or '',
            'propertyRecordId': self.match.property_id or '',
            'contactId': self.buyer.contact_id if self.buyer else '',
            'propertyCode': self.property.property_code if self.property else '',
            'score': self.match.score,
            'distance': self.match.distance,
            'reasoning': self.match.reasoning,
            'highlights': [],
            'isPriority': self.match.is_priority,
            'status': self.match.status,
            self.embed: counterpart.to_dict() if counterpart else None,
        }


@dataclass
class BuyerView:
    buyer: Buyer
    matches: List[MatchView] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        data = self.buyer.to_dict()
        data['matches'] = [m.to_dict() for m in self.matches]
        data['totalMatches'] = self.total_matches
        return data


@dataclass
class PropertyView:
    property: Property
    matches: List[MatchView] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        data = self.property.to_dict()
        data['matches'] = [m.to_dict() for m in self.matches]
        data['totalMatches'] = self.total_matches
        return data


@dataclass
class CacheEntry:
    """One row of the System Cache table."""
    cache_key: str
    data: Optional[str] = None
    record_count: int = 0
    source_count: int = 0
    last_synced: Optional[str] = None
    version: int = 1
    is_valid: bool = False
    record_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> 'CacheEntry':
        fields = record.get('fields', {})
        get = lambda name, default=None: field_map.read(fields, CACHE_FIELDS, name, default)
        return cls(
            cache_key=get('cache_key', ''),
            data=get('data'),
            record_count=int(get('record_count', 0)),
            source_count=int(get('source_count', 0)),
            last_synced=get('last_synced'),
            version=int(get('version', 1)),
            is_valid=bool(get('is_valid', False)),
            record_id=record.get('id'),
        )

    def to_fields(self) -> Dict[str, Any]:
        return field_map.write(CACHE_FIELDS, {
            'cache_key': self.cache_key,
            'data': self.data,
            'record_count': self.record_count,
            'source_count': self.source_count,
            'last_synced': self.last_synced,
            'version': self.version,
            'is_valid': self.is_valid,
        })

    def metadata(self) -> Dict[str, Any]:
        return {
            'cacheKey': self.cache_key,
            'recordCount': self.record_count,
            'sourceCount': self.source_count,
            'lastSynced': self.last_synced,
            'version': self.version,
            'isValid': self.is_valid,
        }
