"""
Tests for record models and their serialized shapes.
"""
from propmatch.models import Buyer, CacheEntry, Match, MatchView, Property


def test_buyer_from_record(sample_buyers):
    buyer = Buyer.from_record(sample_buyers[0])

    assert buyer.record_id == 'recB1'
    assert buyer.contact_id == 'C-100'
    assert buyer.full_name == 'John Doe'
    assert buyer.monthly_income == 8500
    assert buyer.desired_beds is None


def test_buyer_to_dict_keys(sample_buyers):
    data = Buyer.from_record(sample_buyers[1]).to_dict()
    assert data['contactId'] == 'C-200'
    assert data['recordId'] == 'recB2'
    assert data['desiredBeds'] == 3
    assert data['email'] == ''


def test_property_defaults():
    prop = Property.from_record({'id': 'recP9', 'fields': {'Property Code': 'P-009'}})
    assert prop.beds == 0
    assert prop.baths == 0
    assert prop.price is None
    assert prop.sqft is None


def test_match_reads_linked_fields(sample_matches):
    match = Match.from_record(sample_matches[4])

    assert match.buyer_ids == ['recB2']
    assert match.buyer_id == 'recB2'
    assert match.property_id == 'recP2'
    assert match.score == 88
    assert match.is_priority is True
    assert match.status == 'Active'


def test_match_without_links():
    match = Match.from_record({'id': 'recM9', 'fields': {}})
    assert match.buyer_id is None
    assert match.to_snapshot()['buyerRecordId'] == ''


def test_match_to_fields_skips_unset_values():
    match = Match(record_id='', buyer_ids=['recB1'], property_ids=['recP1'], score=72.5)
    fields = match.to_fields()

    assert fields['Contact ID'] == ['recB1']
    assert fields['Property Code'] == ['recP1']
    assert fields['Match Score'] == 72.5
    assert 'Distance (miles)' not in fields


def test_match_view_embeds_counterpart(sample_matches, sample_buyers, sample_properties):
    view = MatchView(
        match=Match.from_record(sample_matches[0]),
        buyer=Buyer.from_record(sample_buyers[0]),
        property=Property.from_record(sample_properties[0]),
        embed='property',
    )
    data = view.to_dict()

    assert data['contactId'] == 'C-100'
    assert data['propertyCode'] == 'P-001'
    assert data['highlights'] == []
    assert data['property']['address'] == '123 Main St'
    assert 'buyer' not in data


def test_match_view_unresolved_counterpart_is_null(sample_matches, sample_buyers):
    view = MatchView(
        match=Match.from_record(sample_matches[0]),
        buyer=Buyer.from_record(sample_buyers[0]),
        property=None,
        embed='property',
    )
    data = view.to_dict()
    assert data['property'] is None
    assert data['propertyCode'] == ''
    assert data['propertyRecordId'] == 'recP1'


def test_cache_entry_round_trip_fields():
    entry = CacheEntry.from_record({'id': 'recC1', 'fields': {
        'cache_key': 'buyers', 'record_count': 3, 'version': 4, 'is_valid': True,
    }})

    assert entry.record_id == 'recC1'
    assert entry.source_count == 0
    assert entry.metadata()['version'] == 4
    assert 'data' not in entry.to_fields()
