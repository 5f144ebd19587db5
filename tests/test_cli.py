"""
Tests for the heirloom command-line interface.
"""

import json
from pathlib import Path

import pytest
import yaml

from heirloom import __version__
from heirloom.cli import HeirloomCLI, OutputFormat, format_output

SCENARIO_DIR = Path(__file__).resolve().parents[1] / "scenarios"


@pytest.fixture
def cli(tmp_path, monkeypatch):
    # Keep default config discovery away from the developer's files.
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return HeirloomCLI()


def run_json(cli, capsys, *argv):
    code = cli.run(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


class TestFormatting:
    """Tests for output formatting."""

    def test_json(self):
        assert json.loads(format_output({"a": 1})) == {"a": 1}

    def test_yaml(self):
        assert yaml.safe_load(format_output({"a": 1}, OutputFormat.YAML)) == {"a": 1}


class TestScenarioCommands:
    """Tests for `heirloom scenario`."""

    def test_run_passing_scenario(self, cli, capsys):
        code, report = run_json(cli, capsys, "scenario", "run", str(SCENARIO_DIR / "basic-distribution.yaml"))
        assert code == 0
        assert report["passed"] is True
        assert report["balances"]["alice"] == 100

    def test_run_failing_scenario(self, cli, capsys, tmp_path):
        path = tmp_path / "failing.yaml"
        path.write_text(yaml.safe_dump({
            "name": "failing",
            "accounts": ["executor"],
            "steps": [{"action": "mint", "to": "executor", "amount": 5}],
            "expect": {"balances": {"executor": 6}},
        }))
        code, report = run_json(cli, capsys, "scenario", "run", str(path))
        assert code == 1
        assert report["passed"] is False

    def test_run_missing_file(self, cli, capsys, tmp_path):
        code = cli.run(["scenario", "run", str(tmp_path / "absent.yaml")])
        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_validate(self, cli, capsys):
        code, result = run_json(cli, capsys, "scenario", "validate", str(SCENARIO_DIR / "remove-and-readd.yaml"))
        assert code == 0
        assert result == {"valid": True, "name": "remove-and-readd", "steps": 13}

    def test_validate_invalid(self, cli, capsys, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: bad\naccounts: [a]\nsteps: []\n")
        code, result = run_json(cli, capsys, "scenario", "validate", str(path))
        assert code == 1
        assert result["valid"] is False
        assert result["errors"]

    def test_yaml_output(self, cli, capsys):
        code = cli.run(["--format", "yaml", "scenario", "validate", str(SCENARIO_DIR / "basic-distribution.yaml")])
        assert code == 0
        assert yaml.safe_load(capsys.readouterr().out)["valid"] is True


class TestConfigCommands:
    """Tests for `heirloom config`."""

    def test_get(self, cli, capsys):
        code, result = run_json(cli, capsys, "config", "get", "gateway.max_duration_days")
        assert code == 0
        assert result == {"path": "gateway.max_duration_days", "value": 365}

    def test_get_unknown_path(self, cli, capsys):
        assert cli.run(["config", "get", "gateway.nope"]) == 1

    def test_show_with_config_file(self, cli, capsys, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("token:\n  symbol: cTST\n")
        code, result = run_json(cli, capsys, "--config", str(path), "config", "show")
        assert code == 0
        assert result["token"]["symbol"] == "cTST"

    def test_project_file_discovered(self, cli, capsys, tmp_path):
        (tmp_path / "heirloom.yaml").write_text("estate:\n  max_name_length: 9\n")
        code, result = run_json(cli, capsys, "config", "get", "estate.max_name_length")
        assert result["value"] == 9

    def test_user_file_overrides_project_file(self, cli, capsys, tmp_path):
        (tmp_path / "heirloom.yaml").write_text("estate:\n  max_name_length: 22\n")
        (tmp_path / ".heirloom").mkdir()
        (tmp_path / ".heirloom" / "config.yaml").write_text("estate:\n  max_name_length: 11\n")
        code, result = run_json(cli, capsys, "config", "get", "estate.max_name_length")
        assert result["value"] == 11

    def test_validate(self, cli, capsys):
        code, result = run_json(cli, capsys, "config", "validate")
        assert code == 0
        assert result == {"valid": True, "errors": []}

    def test_validate_bad_env(self, cli, capsys, monkeypatch):
        monkeypatch.setenv("HEIRLOOM_LOG_LEVEL", "loud")
        code, result = run_json(cli, capsys, "config", "validate")
        assert code == 1
        assert result["valid"] is False

    def test_schema(self, cli, capsys):
        code, result = run_json(cli, capsys, "config", "schema")
        assert "estate" in result["properties"]


class TestMisc:
    """Tests for top-level behavior."""

    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_version(self, cli, capsys):
        with pytest.raises(SystemExit):
            cli.run(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_group_without_subcommand(self, cli, capsys):
        assert cli.run(["config"]) == 2
