"""
pytest configuration and fixtures for propmatch tests.
"""
import re
from typing import Dict, List

import pytest

from propmatch.config import Config, Tables
from propmatch.exceptions import RecordStoreError
from propmatch.store import RecordPage

FIND_TERM = re.compile(r'FIND\("((?:[^"\\]|\\.)*)", ARRAYJOIN\(\{([^}]*)\}\)\)')
RECORD_ID_TERM = re.compile(r'RECORD_ID\(\)="((?:[^"\\]|\\.)*)"')
EQUALS_TERM = re.compile(r'\{([^}]*)\}="((?:[^"\\]|\\.)*)"')


def _unescape(value: str) -> str:
    return value.replace('\\"', '"').replace('\\\\', '\\')


def formula_matches(record: dict, formula: str) -> bool:
    """Evaluate the subset of Airtable formulas propmatch generates."""
    if not formula:
        return True

    fields = record.get('fields', {})
    results = []
    for value, column in FIND_TERM.findall(formula):
        results.append(_unescape(value) in (fields.get(column) or []))
    for value in RECORD_ID_TERM.findall(formula):
        results.append(record['id'] == _unescape(value))
    for column, value in EQUALS_TERM.findall(formula):
        results.append(str(fields.get(column)) == _unescape(value))

    if not results:
        raise AssertionError(f"Unsupported formula in test store: {formula}")
    if formula.startswith('AND('):
        return all(results)
    return any(results)


class FakeRecordStore:
    """
    In-memory stand-in for AirtableClient.

    Counts one request per page, like the real client, and can be told to
    fail a given operation on a given table.
    """

    def __init__(self, tables: Dict[str, List[dict]] = None):
        self.tables: Dict[str, List[dict]] = {name: list(records) for name, records in (tables or {}).items()}
        self.request_count = 0
        self.failures = {}
        self.calls = []
        self.deleted_batches = []
        self._next_id = 1

    def fail(self, method: str, table: str, error: Exception = None):
        self.failures[(method, table)] = error or RecordStoreError(
            "Airtable API error: 500 Internal Server Error", status_code=500
        )

    def _request(self, method: str, table: str):
        self.request_count += 1
        self.calls.append((method, table))
        error = self.failures.get((method, table))
        if error:
            raise error

    def records(self, table: str) -> List[dict]:
        return self.tables.setdefault(table, [])

    # Reads

    def list_records(self, table, formula=None, page_size=None, offset=None, fields=None, max_records=None):
        self._request('list_records', table)
        rows = [r for r in self.records(table) if formula_matches(r, formula)]
        if max_records:
            rows = rows[:max_records]

        start = int(offset) if offset else 0
        size = min(page_size or 100, 100)
        page = rows[start:start + size]
        next_offset = str(start + size) if start + size < len(rows) else None

        if fields:
            fields = list(fields)
            page = [
                {'id': r['id'], 'fields': {k: v for k, v in r['fields'].items() if k in fields}}
                for r in page
            ]
        else:
            page = [{'id': r['id'], 'fields': dict(r['fields'])} for r in page]
        return RecordPage(records=page, offset=next_offset)

    def query(self, table, formula=None, fields=None, page_size=100):
        records, offset = [], None
        while True:
            page = self.list_records(table, formula=formula, page_size=page_size, offset=offset, fields=fields)
            records.extend(page.records)
            offset = page.offset
            if not offset:
                return records

    def fetch_by_ids(self, table, record_ids, fields=None):
        from propmatch.store.formulas import record_ids_any

        unique_ids = list(dict.fromkeys(rid for rid in record_ids if rid))
        if not unique_ids:
            return []
        return self.query(table, formula=record_ids_any(unique_ids), fields=fields)

    def find_first(self, table, formula, fields=None):
        page = self.list_records(table, formula=formula, fields=fields, max_records=1)
        return page.records[0] if page.records else None

    def count(self, table, field=None, page_size=100):
        return len(self.query(table, fields=[field] if field else None, page_size=page_size))

    # Writes

    def create_record(self, table, fields):
        self._request('create_record', table)
        record = {'id': f'recNEW{self._next_id:03d}', 'fields': dict(fields)}
        self._next_id += 1
        self.records(table).append(record)
        return {'id': record['id'], 'fields': dict(record['fields'])}

    def update_record(self, table, record_id, fields):
        self._request('update_record', table)
        for record in self.records(table):
            if record['id'] == record_id:
                record['fields'].update(fields)
                return {'id': record_id, 'fields': dict(record['fields'])}
        raise RecordStoreError("Airtable API error: 404 Not Found", status_code=404)

    def delete_records(self, table, record_ids):
        if len(record_ids) > 10:
            raise ValueError(f"Cannot delete {len(record_ids)} records at once (max 10)")
        self._request('delete_records', table)
        self.deleted_batches.append(list(record_ids))
        self.tables[table] = [r for r in self.records(table) if r['id'] not in record_ids]
        return len(record_ids)


def buyer_record(record_id, contact_id, first_name, last_name, **extra):
    fields = {'Contact ID': contact_id, 'First Name': first_name, 'Last Name': last_name}
    fields.update(extra)
    return {'id': record_id, 'fields': fields}


def property_record(record_id, code, address, city='Asheville', price=None, **extra):
    fields = {'Property Code': code, 'Address': address, 'City': city}
    if price is not None:
        fields['Price'] = price
    fields.update(extra)
    return {'id': record_id, 'fields': fields}


def match_record(record_id, buyer_id, property_id, score, **extra):
    fields = {'Contact ID': [buyer_id], 'Property Code': [property_id], 'Match Score': score}
    fields.update(extra)
    return {'id': record_id, 'fields': fields}


@pytest.fixture
def tables():
    return Tables()


@pytest.fixture
def sample_buyers():
    """Three buyers; the third has no matches."""
    return [
        buyer_record('recB1', 'C-100', 'John', 'Doe', Email='john.doe@example.com', **{'Monthly Income': 8500}),
        buyer_record('recB2', 'C-200', 'Jane', 'Smith', **{'No. of Bedrooms': 3}),
        buyer_record('recB3', 'C-300', 'Sam', 'Lee'),
    ]


@pytest.fixture
def sample_properties():
    return [
        property_record('recP1', 'P-001', '123 Main St', price=350000, Beds=3, Baths=2),
        property_record('recP2', 'P-002', '45 Oak Ave', price=425000, Beds=4, Baths=3),
        property_record('recP3', 'P-003', '9 Ridge Rd'),
    ]


@pytest.fixture
def sample_matches():
    """recB1 has three matches, recB2 two, recB3 none."""
    return [
        match_record('recM1', 'recB1', 'recP1', 80, **{'Match Notes': 'Price fits budget'}),
        match_record('recM2', 'recB1', 'recP2', 95),
        match_record('recM3', 'recB1', 'recP3', 60),
        match_record('recM4', 'recB2', 'recP1', 70),
        match_record('recM5', 'recB2', 'recP2', 88, **{'Is Priority': True}),
    ]


@pytest.fixture
def store(tables, sample_buyers, sample_properties, sample_matches):
    """Fake record store seeded with the sample buyers, properties and matches."""
    return FakeRecordStore({
        tables.buyers: sample_buyers,
        tables.properties: sample_properties,
        tables.matches: sample_matches,
        tables.cache: [],
    })


@pytest.fixture
def config():
    """Configured settings with test credentials."""
    return Config({
        'airtable': {'api_key': 'patTEST', 'base_id': 'appTEST'},
        'api': {'cors_allowed_origins': 'http://localhost:5173'},
    })


@pytest.fixture
def app(config, store):
    from propmatch.api import create_app

    app = create_app(config, store=store)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_match():
    return match_record
