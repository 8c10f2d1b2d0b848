"""
Tests for match maintenance (bulk clear, duplicate-checked create) and
scored match generation.
"""
import pytest

from propmatch.assembler import aggregate
from propmatch.exceptions import DuplicateRecordError, ValidationError
from propmatch.matches import MatchRunner, clear_all_matches, create_match, validate_min_score
from propmatch.resolver import Resolver


def test_clear_deletes_in_batches_of_ten(store, tables, make_match):
    store.tables[tables.matches] = [
        make_match(f'recM{i:02d}', 'recB1', 'recP1', 50) for i in range(23)
    ]

    deleted = clear_all_matches(store, tables.matches)

    assert deleted == 23
    assert [len(batch) for batch in store.deleted_batches] == [10, 10, 3]
    assert store.tables[tables.matches] == []


def test_clear_empty_table(store, tables):
    store.tables[tables.matches] = []
    assert clear_all_matches(store, tables.matches) == 0
    assert store.deleted_batches == []


def test_create_match(store, tables):
    match = create_match(store, tables, 'recB3', 'recP1', 77, distance=4.2, reasoning='Near downtown')

    assert match.record_id.startswith('recNEW')
    assert match.buyer_id == 'recB3'
    assert match.property_id == 'recP1'
    assert match.score == 77
    assert match.status == 'Active'

    row = store.tables[tables.matches][-1]
    assert row['fields']['Contact ID'] == ['recB3']
    assert row['fields']['Distance (miles)'] == 4.2


def test_create_duplicate_pair(store, tables):
    with pytest.raises(DuplicateRecordError) as exc_info:
        create_match(store, tables, 'recB1', 'recP2', 40)

    assert exc_info.value.record_id == 'recM2'
    assert len(store.tables[tables.matches]) == 5


def test_same_property_for_other_buyer_is_not_duplicate(store, tables):
    create_match(store, tables, 'recB2', 'recP3', 65)
    assert len(store.tables[tables.matches]) == 6


def test_create_requires_fields(store, tables):
    with pytest.raises(ValidationError) as exc_info:
        create_match(store, tables, None, '', None)
    assert exc_info.value.fields == ['buyerRecordId', 'propertyRecordId', 'score']


@pytest.mark.parametrize('score', ['high', -1, 101])
def test_create_rejects_bad_score(store, tables, score):
    with pytest.raises(ValidationError):
        create_match(store, tables, 'recB3', 'recP1', score)


def test_aggregate_after_clear_has_no_matches(store, tables):
    assert clear_all_matches(store, tables.matches) == 5

    result = aggregate(Resolver(store, tables=tables), 'buyers')

    assert [b['totalMatches'] for b in result['data']] == [0, 0, 0]
    assert all(b['matches'] == [] for b in result['data'])
    assert result['stats']['matches'] == 0


# ---------------------------------------------------------------
# Match generation
# ---------------------------------------------------------------

@pytest.fixture
def runner(store, tables):
    return MatchRunner(store, tables=tables)


def rows_for(store, tables, buyer_id):
    return [r for r in store.tables[tables.matches] if r['fields']['Contact ID'] == [buyer_id]]


class TestMatchRunner:

    def test_full_run_skips_existing_pairs(self, runner, store, tables):
        stats = runner.run_all()

        assert stats.buyers_processed == 3
        assert stats.properties_processed == 3
        assert stats.duplicates_skipped == 5
        assert stats.matches_created == 4
        assert stats.matches_updated == 0
        assert len(store.tables[tables.matches]) == 9
        assert store.calls.count(('update_record', tables.matches)) == 0

        created = store.tables[tables.matches][5:]
        assert {(r['fields']['Contact ID'][0], r['fields']['Property Code'][0]) for r in created} == {
            ('recB2', 'recP3'), ('recB3', 'recP1'), ('recB3', 'recP2'), ('recB3', 'recP3'),
        }
        assert all(r['fields']['Match Score'] == 50 for r in created)
        assert all(r['fields']['Match Status'] == 'Active' for r in created)

    def test_second_full_run_creates_nothing(self, runner, store, tables):
        runner.run_all()
        stats = runner.run_all()

        assert stats.matches_created == 0
        assert stats.duplicates_skipped == 9

    def test_min_score_filters_pairs(self, store, tables):
        stats = MatchRunner(store, tables=tables, min_score=51).run_all()

        assert stats.matches_created == 0
        assert len(store.tables[tables.matches]) == 5

    def test_refresh_all_rescores_existing(self, runner, store, tables):
        stats = runner.run_all(refresh_all=True)

        assert stats.duplicates_skipped == 0
        assert stats.matches_updated == 5
        assert stats.matches_created == 4

        m4 = next(r for r in store.tables[tables.matches] if r['id'] == 'recM4')
        assert m4['fields']['Match Score'] == 63
        assert m4['fields']['Contact ID'] == ['recB2']
        assert m4['fields']['Match Notes'].startswith('Good Match (Score: 63/100)')

    def test_priority_match_in_preferred_zip(self, runner, store, tables):
        store.tables[tables.buyers][2]['fields']['Preferred Zip Codes'] = '28801, 28804'
        store.tables[tables.properties][0]['fields']['Zip Code'] = '28801'

        stats = runner.run_all()

        assert stats.priority_matches == 1
        b3p1 = next(r for r in rows_for(store, tables, 'recB3') if r['fields']['Property Code'] == ['recP1'])
        assert b3p1['fields']['Is Priority'] is True
        assert b3p1['fields']['Match Score'] == 70
        assert b3p1['fields']['Match Notes'].startswith('[PRIORITY] Good Match')

    def test_run_for_buyer_updates_and_creates(self, runner, store, tables):
        buyer, stats = runner.run_for_buyer('C-200')

        assert buyer.full_name == 'Jane Smith'
        assert stats.buyers_processed == 1
        assert stats.matches_updated == 2
        assert stats.matches_created == 1
        assert stats.duplicates_skipped == 0
        assert len(rows_for(store, tables, 'recB2')) == 3
        assert len(rows_for(store, tables, 'recB1')) == 3

    def test_run_for_property(self, runner, store, tables):
        prop, stats = runner.run_for_property('P-001')

        assert prop.record_id == 'recP1'
        assert stats.properties_processed == 1
        assert stats.matches_updated == 2
        assert stats.matches_created == 1

    def test_unknown_buyer_or_property(self, runner, store, tables):
        assert runner.run_for_buyer('C-999') is None
        assert runner.run_for_property('P-999') is None
        assert len(store.tables[tables.matches]) == 5

    def test_stats_to_dict(self, runner):
        assert runner.run_all().to_dict() == {
            'buyersProcessed': 3,
            'propertiesProcessed': 3,
            'matchesCreated': 4,
            'matchesUpdated': 0,
            'duplicatesSkipped': 5,
            'priorityMatches': 0,
        }


class TestValidateMinScore:

    @pytest.mark.parametrize('value,expected', [(None, 30), ('', 30), ('45', 45.0), (0, 0.0), (100, 100.0)])
    def test_valid(self, value, expected):
        assert validate_min_score(value) == expected

    @pytest.mark.parametrize('value', ['high', -5, 101])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_min_score(value)
        assert exc_info.value.fields == ['minScore']
