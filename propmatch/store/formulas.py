"""
Airtable filterByFormula builders.

All values are quoted with double quotes; backslashes and quotes inside
values are escaped so record ids and user input cannot break the formula.
"""

from typing import Iterable


def escape(value) -> str:
    """Escape a value for use inside a double-quoted formula string."""
    return str(value).replace('\\', '\\\\').replace('"', '\\"')


def field_equals(field: str, value) -> str:
    """{Field}="value" """
    return f'{{{field}}}="{escape(value)}"'


def link_contains(field: str, record_id: str) -> str:
    """True when a linked-record field references record_id."""
    return f'FIND("{escape(record_id)}", ARRAYJOIN({{{field}}}))'


def record_id_is(record_id: str) -> str:
    return f'RECORD_ID()="{escape(record_id)}"'


def any_of(terms: Iterable[str]) -> str:
    """OR() of the given terms. A single term is returned unwrapped."""
    terms = list(terms)
    if not terms:
        raise ValueError("any_of() needs at least one term")
    if len(terms) == 1:
        return terms[0]
    return f"OR({','.join(terms)})"


def all_of(terms: Iterable[str]) -> str:
    """AND() of the given terms. A single term is returned unwrapped."""
    terms = list(terms)
    if not terms:
        raise ValueError("all_of() needs at least one term")
    if len(terms) == 1:
        return terms[0]
    return f"AND({','.join(terms)})"


def links_any(field: str, record_ids: Iterable[str]) -> str:
    """Match records whose linked field references any of record_ids."""
    return any_of(link_contains(field, rid) for rid in record_ids)


def record_ids_any(record_ids: Iterable[str]) -> str:
    return any_of(record_id_is(rid) for rid in record_ids)
