"""
Tests for the retirement_cost.py command line entry point.

The cost query client and credentials are replaced with fakes; no Azure
calls are made.
"""
import csv
import json
import logging
import os
import sys
from decimal import Decimal

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import retirement_cost
from retcost.errors import AuthError
from retcost.models import CostResult

SUB = "00000000-1111-2222-3333-444444444444"
HEADER = "Type,Retiring Feature,Retirement Date,Resource Name,Action"


def rid(name: str) -> str:
    return f"/subscriptions/{SUB}/resourceGroups/rg/providers/Microsoft.Web/sites/{name}"


class FakeCostQueryClient:
    """Stands in for CostQueryClient; records every instance created."""

    instances = []
    costs = {}

    def __init__(self, session=None, config=None, sleep=None):
        self.config = config
        self.calls = []
        FakeCostQueryClient.instances.append(self)

    def query_cost(self, record, period, token):
        self.calls.append((record.name, period.period, token))
        return CostResult(cost=Decimal(self.costs.get(record.name, "0")), currency="USD")


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolated working dir, static token and fake query client."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level

    for key in list(os.environ):
        if key.startswith('RETCOST_'):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('HOME', str(tmp_path))
    monkeypatch.setenv('RETCOST_ACCESS_TOKEN', 'static-token')

    FakeCostQueryClient.instances = []
    FakeCostQueryClient.costs = {}
    monkeypatch.setattr(retirement_cost, 'CostQueryClient', FakeCostQueryClient)

    yield tmp_path

    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def write_input(path, rows, delimiter=","):
    lines = [HEADER.replace(",", delimiter)] + [delimiter.join(r) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


# =============================================================================
# Fatal Input Tests
# =============================================================================

class TestFatalInput:
    """Exit codes for input problems."""

    def test_invalid_period_before_reading_input(self, cli_env, capsys):
        """The period is validated before the input file is opened."""
        code = retirement_cost.main(['-i', 'does-not-exist.csv', '-p', '2024-01'])

        assert code == 1
        assert "Invalid billing period" in capsys.readouterr().err
        assert FakeCostQueryClient.instances == []

    def test_out_of_range_year(self, cli_env, capsys):
        """A year whose month boundaries cannot be represented is rejected up front."""
        path = write_input(cli_env / "in.csv", [["A", "F", "2099-01-01", rid("r1"), "x"]])

        code = retirement_cost.main(['-i', path, '-p', '999912'])

        assert code == 1
        assert "Invalid billing period" in capsys.readouterr().err
        assert FakeCostQueryClient.instances == []

    def test_invalid_end_date(self, cli_env, capsys):
        code = retirement_cost.main(['-i', 'x.csv', '-p', '202401', '--end-date', '31/12/2026'])

        assert code == 1
        assert "Invalid end date" in capsys.readouterr().err

    def test_missing_input_file(self, cli_env, capsys):
        code = retirement_cost.main(['-i', 'missing.csv', '-p', '202401'])

        assert code == 1
        assert "Input file not found" in capsys.readouterr().err

    def test_no_matching_resources(self, cli_env, capsys):
        """Nothing in the window: exit 1 without any cost query."""
        path = write_input(cli_env / "in.csv", [
            ["Microsoft.Web/sites", "F", "2001-01-01", rid("old"), "A"],
        ])

        code = retirement_cost.main(['-i', path, '-p', '202401'])

        assert code == 1
        assert "No resources with a future retirement date" in capsys.readouterr().err
        assert FakeCostQueryClient.instances == []

    def test_missing_config_file(self, cli_env):
        assert retirement_cost.main(['-i', 'x.csv', '--config', 'nope.yaml']) == 1

    def test_malformed_config_number(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv('RETCOST_MAX_ATTEMPTS', 'abc')

        code = retirement_cost.main(['-i', 'x.csv', '-p', '202401'])

        assert code == 1
        assert "query.max_attempts" in capsys.readouterr().err
        assert FakeCostQueryClient.instances == []

    def test_input_required(self, cli_env):
        with pytest.raises(SystemExit) as exc_info:
            retirement_cost.main(['-p', '202401'])
        assert exc_info.value.code == 2


# =============================================================================
# Run Tests
# =============================================================================

class TestRun:
    """End-to-end runs with the fake client."""

    def test_full_run_with_export_and_summary(self, cli_env, capsys):
        FakeCostQueryClient.costs = {"r1": "10.00", "r2": "5.50", "r3": "2.25"}
        path = write_input(cli_env / "in.csv", [
            ["A", "F", "2099-01-01", rid("r1"), "x"],
            ["A", "F", "2099-01-01", rid("r2"), "x"],
            ["B", "G", "2099-02-01", rid("r3"), "x"],
            ["A", "F", "2001-01-01", rid("gone"), "x"],
        ], delimiter=";")
        export = str(cli_env / "costs.csv")

        code = retirement_cost.main([
            '-i', path, '-d', ';', '-p', '202401',
            '--export', export, '--summary-json', '-o', str(cli_env),
        ])

        assert code == 0
        client = FakeCostQueryClient.instances[0]
        assert [c[0] for c in client.calls] == ["r1", "r2", "r3"]
        assert {c[2] for c in client.calls} == {"static-token"}

        out = capsys.readouterr().out
        assert "17.75000" in out

        with open(export, newline='') as f:
            rows = list(csv.DictReader(f, delimiter=';'))
        assert [r["ResourceName"] for r in rows] == ["r1", "r2", "r3"]
        assert rows[0]["Cost"] == "10.00"

        with open(cli_env / "retirement_cost_sum_202401.json") as f:
            summary = json.load(f)
        assert summary["total_cost"] == "17.75"
        assert summary["currency"] == "USD"
        assert summary["resource_count"] == 3

    def test_end_date_limits_resources(self, cli_env):
        path = write_input(cli_env / "in.csv", [
            ["A", "F", "2099-01-01", rid("early"), "x"],
            ["A", "F", "2099-06-01", rid("late"), "x"],
        ])

        code = retirement_cost.main(['-i', path, '-p', '202401', '--end-date', '2099-03-01'])

        assert code == 0
        assert [c[0] for c in FakeCostQueryClient.instances[0].calls] == ["early"]

    def test_ceilings_passed_to_client(self, cli_env):
        path = write_input(cli_env / "in.csv", [["A", "F", "2099-01-01", rid("r1"), "x"]])

        retirement_cost.main(['-i', path, '-p', '202401', '--max-attempts', '4', '--max-total-wait', '60'])

        config = FakeCostQueryClient.instances[0].config
        assert config.max_attempts == 4
        assert config.max_total_wait == 60.0

    def test_config_file_values_used(self, cli_env):
        path = write_input(cli_env / "in.csv", [["A", "F", "2099-01-01", rid("r1"), "x"]], delimiter="|")
        (cli_env / "retcost-config.yaml").write_text(
            f'input: "{path}"\ndelimiter: "|"\nperiod: 202401\nquery:\n  max_attempts: 9\n'
        )

        code = retirement_cost.main([])

        assert code == 0
        client = FakeCostQueryClient.instances[0]
        assert client.calls[0][1] == "202401"
        assert client.config.max_attempts == 9

    def test_auth_failure_exit_code(self, cli_env, monkeypatch, capsys):
        monkeypatch.delenv('RETCOST_ACCESS_TOKEN')

        class FailingProvider:
            credential = object()

            def get_token(self):
                raise AuthError("no az login")

        monkeypatch.setattr(retirement_cost, 'AzureCredentialProvider', FailingProvider)
        path = write_input(cli_env / "in.csv", [["A", "F", "2099-01-01", rid("r1"), "x"]])

        code = retirement_cost.main(['-i', path, '-p', '202401'])

        assert code == 2
        assert "Authentication failed" in capsys.readouterr().err
        assert FakeCostQueryClient.instances[0].calls == []

    def test_generate_config(self, cli_env, capsys):
        assert retirement_cost.main(['--generate-config']) == 0
        assert "query:" in capsys.readouterr().out
