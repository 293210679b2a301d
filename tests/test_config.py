"""
Tests for retcost/config.py.

Covers:
- YAML config loading with ${VAR} substitution
- Environment variable config (RETCOST_*)
- Merge priority and CLI argument mapping
- Type coercion of periods, dates and numbers
- Cost query settings built from config
"""
import argparse
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from retcost.config import (
    args_to_config,
    generate_sample_config,
    load_config,
    load_config_file,
    load_env_config,
    merge_configs,
    query_config_from,
)
from retcost.errors import InvalidConfigValue


def make_args(**overrides) -> argparse.Namespace:
    values = dict(
        input=None, delimiter=None, period=None, end_date=None, date_format=None,
        output=None, export=None, summary_json=None, log_level=None,
        max_attempts=None, max_total_wait=None, config=None,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove any RETCOST_* variables from the environment."""
    for key in list(os.environ):
        if key.startswith('RETCOST_'):
            monkeypatch.delenv(key)
    return monkeypatch


# =============================================================================
# Config File Tests
# =============================================================================

class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_basic_yaml(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text('input: "./list.csv"\ndelimiter: ";"\nquery:\n  max_attempts: 5\n')

        config = load_config_file(str(path))

        assert config['input'] == './list.csv'
        assert config['delimiter'] == ';'
        assert config['query']['max_attempts'] == 5

    def test_env_substitution_with_default(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text('query:\n  max_total_wait: ${RETCOST_TEST_WAIT:-3600}\n')

        assert load_config_file(str(path))['query']['max_total_wait'] == 3600.0

        clean_env.setenv('RETCOST_TEST_WAIT', '90')
        assert load_config_file(str(path))['query']['max_total_wait'] == 90.0

    def test_unquoted_period_and_date_kept_as_text(self, tmp_path, clean_env):
        """YAML would read these as int and date."""
        path = tmp_path / "config.yaml"
        path.write_text('period: 202401\nend_date: 2026-12-31\n')

        config = load_config_file(str(path))

        assert config['period'] == '202401'
        assert config['end_date'] == '2026-12-31'

    def test_empty_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text('')
        assert load_config_file(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(str(tmp_path / "nope.yaml"))

    def test_loose_permissions_warned(self, tmp_path, clean_env, caplog):
        path = tmp_path / "config.yaml"
        path.write_text('input: x\n')
        os.chmod(path, 0o644)

        with caplog.at_level('WARNING'):
            load_config_file(str(path))

        assert any('loose permissions' in r.getMessage() for r in caplog.records)


# =============================================================================
# Environment Config Tests
# =============================================================================

class TestLoadEnvConfig:
    """Tests for load_env_config."""

    def test_reads_prefixed_vars(self, clean_env):
        clean_env.setenv('RETCOST_INPUT', 'list.csv')
        clean_env.setenv('RETCOST_MAX_ATTEMPTS', '7')
        clean_env.setenv('RETCOST_MAX_TOTAL_WAIT', '120.5')
        clean_env.setenv('RETCOST_SUMMARY_JSON', 'yes')

        config = load_env_config()

        assert config['input'] == 'list.csv'
        assert config['query']['max_attempts'] == 7
        assert config['query']['max_total_wait'] == 120.5
        assert config['summary_json'] is True

    def test_empty_value_is_unset(self, clean_env):
        clean_env.setenv('RETCOST_MAX_ATTEMPTS', '')
        assert load_env_config() == {'query': {'max_attempts': None}}

    def test_nothing_set(self, clean_env):
        assert load_env_config() == {}

    def test_malformed_number(self, clean_env):
        """Non-numeric values for numeric keys are a fatal input error."""
        clean_env.setenv('RETCOST_MAX_ATTEMPTS', 'abc')

        with pytest.raises(InvalidConfigValue, match="query.max_attempts"):
            load_env_config()

    def test_malformed_number_in_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text('query:\n  max_total_wait: "an hour"\n')

        with pytest.raises(InvalidConfigValue) as exc_info:
            load_config_file(str(path))
        assert exc_info.value.value == 'an hour'


# =============================================================================
# Merge Tests
# =============================================================================

class TestMergeConfigs:
    """Tests for merge_configs and load_config."""

    def test_later_wins(self):
        merged = merge_configs({'delimiter': ','}, {'delimiter': ';'})
        assert merged['delimiter'] == ';'

    def test_nested_merge(self):
        merged = merge_configs(
            {'query': {'max_attempts': 5, 'timeout': 30}},
            {'query': {'max_attempts': 9}},
        )
        assert merged['query'] == {'max_attempts': 9, 'timeout': 30}

    def test_none_does_not_override(self):
        merged = merge_configs({'period': '202401'}, {'period': None})
        assert merged['period'] == '202401'

    def test_args_to_config(self):
        args = make_args(input='a.csv', max_attempts=3)
        assert args_to_config(args) == {'input': 'a.csv', 'query': {'max_attempts': 3}}

    def test_cli_overrides_file_and_env(self, tmp_path, clean_env):
        clean_env.setenv('RETCOST_DELIMITER', '|')
        clean_env.setenv('RETCOST_PERIOD', '202301')
        path = tmp_path / "config.yaml"
        path.write_text('delimiter: ";"\ninput: file.csv\n')
        args = make_args(config=str(path), period='202402')

        config = load_config(args)

        assert config['delimiter'] == ';'
        assert args.delimiter == ';'
        assert args.input == 'file.csv'
        assert args.period == '202402'

    def test_no_sources(self, tmp_path, clean_env):
        clean_env.chdir(tmp_path)
        clean_env.setenv('HOME', str(tmp_path))
        args = make_args()

        assert load_config(args) == {}
        assert args.input is None


# =============================================================================
# Query Settings Tests
# =============================================================================

class TestQueryConfigFrom:
    """Tests for query_config_from."""

    def test_defaults(self):
        qc = query_config_from({})
        assert qc.api_version == '2023-03-01'
        assert qc.default_retry_after == 30
        assert qc.max_attempts is None
        assert qc.max_total_wait is None

    def test_overrides(self):
        qc = query_config_from({'query': {
            'max_attempts': 4,
            'max_total_wait': 600.0,
            'default_retry_after': 10.0,
            'timeout': 15.0,
        }})
        assert qc.max_attempts == 4
        assert qc.max_total_wait == 600.0
        assert qc.default_retry_after == 10.0
        assert qc.timeout == 15.0

    def test_sample_config_is_valid_yaml(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text(generate_sample_config())

        config = load_config_file(str(path))

        assert config['delimiter'] == ','
        assert config['summary_json'] is False
        assert config['query']['default_retry_after'] == 30
