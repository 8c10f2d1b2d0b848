"""
Tests for the command-line interface.
"""
import logging

import pytest

from propmatch.__main__ import main
from propmatch.config import ENV_OVERRIDES


@pytest.fixture
def cli_config(tmp_path, monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.setenv(name, '')
    path = tmp_path / 'config.yaml'
    path.write_text("airtable:\n  api_key: patTEST\n  base_id: appTEST\n")
    yield str(path)
    logging.getLogger('propmatch').handlers.clear()


@pytest.fixture
def cli_store(mocker, store):
    mocker.patch('propmatch.__main__._store', return_value=store)
    return store


def test_sync(cli_config, cli_store, capsys):
    assert main(['--config', cli_config, 'sync', 'buyers']) == 0
    assert 'buyers: 3 records (v1)' in capsys.readouterr().out


def test_status(cli_config, cli_store, capsys):
    assert main(['--config', cli_config, 'status']) == 0
    out = capsys.readouterr().out
    assert 'properties: 0 cached / 3 live' in out
    assert 'Stale: yes' in out


def test_get_missing_key(cli_config, cli_store, capsys):
    assert main(['--config', cli_config, 'get', 'buyers']) == 1
    assert 'Cache not found: buyers' in capsys.readouterr().out


def test_clear_requires_confirmation(cli_config, cli_store, tables):
    assert main(['--config', cli_config, 'clear-matches']) == 1
    assert len(cli_store.tables[tables.matches]) == 5

    assert main(['--config', cli_config, 'clear-matches', '--yes']) == 0
    assert cli_store.tables[tables.matches] == []


def test_missing_credentials(tmp_path, monkeypatch, capsys):
    for name in ENV_OVERRIDES:
        monkeypatch.setenv(name, '')
    empty = tmp_path / 'empty.yaml'
    empty.write_text('')

    try:
        assert main(['--config', str(empty), 'status']) == 1
    finally:
        logging.getLogger('propmatch').handlers.clear()
    assert 'AIRTABLE_API_KEY not set' in capsys.readouterr().out


def test_run_matching(cli_config, cli_store, tables, capsys):
    assert main(['--config', cli_config, 'run-matching']) == 0
    out = capsys.readouterr().out
    assert 'Created:  4' in out
    assert 'Skipped:  5' in out
    assert len(cli_store.tables[tables.matches]) == 9


def test_run_matching_for_buyer(cli_config, cli_store, capsys):
    assert main(['--config', cli_config, 'run-matching', '--contact-id', 'C-100', '--min-score', '60']) == 0
    out = capsys.readouterr().out
    assert 'Matched John Doe' in out
    assert 'Created:  0' in out


def test_run_matching_unknown_property(cli_config, cli_store, capsys):
    assert main(['--config', cli_config, 'run-matching', '--property-code', 'P-999']) == 1
    assert 'Property not found: P-999' in capsys.readouterr().out
