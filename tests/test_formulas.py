"""
Tests for filterByFormula builders.
"""
import pytest

from propmatch.store import formulas


def test_field_equals_quotes_value():
    assert formulas.field_equals('Contact ID', 'C-100') == '{Contact ID}="C-100"'


def test_escape_handles_quotes_and_backslashes():
    assert formulas.field_equals('Name', 'say "hi"\\') == '{Name}="say \\"hi\\"\\\\"'


def test_link_contains():
    assert formulas.link_contains('Contact ID', 'recB1') == 'FIND("recB1", ARRAYJOIN({Contact ID}))'


def test_links_any_wraps_multiple_terms_in_or():
    formula = formulas.links_any('Contact ID', ['recB1', 'recB2'])
    assert formula == (
        'OR(FIND("recB1", ARRAYJOIN({Contact ID})),FIND("recB2", ARRAYJOIN({Contact ID})))'
    )


def test_single_term_is_not_wrapped():
    assert formulas.record_ids_any(['recP1']) == 'RECORD_ID()="recP1"'
    assert formulas.all_of(['{A}="1"']) == '{A}="1"'


def test_record_ids_any():
    assert formulas.record_ids_any(['recP1', 'recP2']) == 'OR(RECORD_ID()="recP1",RECORD_ID()="recP2")'


def test_all_of():
    assert formulas.all_of(['{A}="1"', '{B}="2"']) == 'AND({A}="1",{B}="2")'


@pytest.mark.parametrize('builder', [formulas.any_of, formulas.all_of])
def test_empty_terms_rejected(builder):
    with pytest.raises(ValueError):
        builder([])
