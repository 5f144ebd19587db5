"""
Tests for configuration values, YAML loading and environment binding.
"""

import pytest
import yaml

from heirloom.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
    HeirloomConfig,
    get_config,
    get_config_manager,
)


class TestConfigValue:
    """Tests for a single configuration value."""

    def test_default(self):
        assert ConfigValue(default=5).get() == 5

    def test_set_and_reset(self):
        value = ConfigValue(default=5)
        value.set(9)
        assert value.get() == 9
        value.reset()
        assert value.get() == 5

    def test_string_coerced_for_int(self):
        value = ConfigValue(default=5)
        value.set("12")
        assert value.get() == 12

    def test_bool_coercion(self):
        value = ConfigValue(default=False)
        value.set("yes")
        assert value.get() is True

    def test_uncoercible_string(self):
        with pytest.raises(ConfigValidationError):
            ConfigValue(default=5).set("twelve")

    def test_validator(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ConfigValidationError):
            value.set(-1)
        assert value.get() == 5

    def test_env_var_wins(self, monkeypatch):
        value = ConfigValue(default=5, env_var="HEIRLOOM_TEST_VALUE")
        value.set(7)
        monkeypatch.setenv("HEIRLOOM_TEST_VALUE", "11")
        assert value.get() == 11

    def test_on_change(self):
        value = ConfigValue(default=5)
        changes = []
        value.on_change(lambda old, new: changes.append((old, new)))
        value.set(6)
        assert changes == [(None, 6)]


class TestHeirloomConfig:
    """Tests for the root configuration."""

    def test_defaults(self):
        config = HeirloomConfig()
        assert config.estate.max_name_length.get() == 256
        assert config.gateway.max_duration_days.get() == 365
        assert config.runtime.genesis_timestamp.get() == 0
        assert config.observability.log_format.get() == "json"

    def test_to_dict(self):
        data = HeirloomConfig().to_dict()
        assert data["token"] == {"name": "Confidential Estate Token", "symbol": "cEST", "decimals": 6}

    def test_to_yaml_round_trips(self):
        assert yaml.safe_load(HeirloomConfig().to_yaml()) == HeirloomConfig().to_dict()


class TestConfigManager:
    """Tests for the configuration manager singleton."""

    def test_singleton(self):
        assert get_config_manager() is ConfigManager()
        assert get_config() is ConfigManager().config

    def test_reset_drops_overrides(self):
        get_config_manager().set("estate.max_name_length", 10)
        ConfigManager.reset()
        assert get_config().estate.max_name_length.get() == 256

    def test_get_by_path(self):
        manager = get_config_manager()
        assert manager.get("gateway.default_duration_days") == 7
        assert manager.get("token")["symbol"] == "cEST"

    def test_invalid_path(self):
        manager = get_config_manager()
        with pytest.raises(ConfigError):
            manager.get("estate.nope")
        with pytest.raises(ConfigError):
            manager.set("estate", 3)

    def test_set_notifies_watchers(self):
        manager = get_config_manager()
        seen = []
        manager.watch(seen.append)
        manager.set("token.decimals", 2)
        assert seen == [manager.config]
        assert manager.get("token.decimals") == 2

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "heirloom.yaml"
        path.write_text("estate:\n  max_name_length: 12\ntoken:\n  symbol: cTST\n")
        manager = get_config_manager()
        manager.load_from_file(path)
        assert manager.get("estate.max_name_length") == 12
        assert manager.get("token.symbol") == "cTST"

    def test_reload_reapplies_file(self, tmp_path):
        path = tmp_path / "heirloom.yaml"
        path.write_text("estate:\n  max_name_length: 12\n")
        manager = get_config_manager()
        manager.load_from_file(path)
        path.write_text("estate:\n  max_name_length: 20\n")
        manager.reload()
        assert manager.get("estate.max_name_length") == 20

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    @pytest.mark.parametrize("content", [
        "estate: [unclosed\n",
        "- just\n- a list\n",
        "estate:\n  colour: blue\n",
        "nonsense: 1\n",
    ])
    def test_bad_files(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("gateway:\n  max_duration_days: 0\n")
        with pytest.raises(ConfigValidationError):
            get_config_manager().load_from_file(path)

    def test_validate_reports_bad_env(self, monkeypatch):
        monkeypatch.setenv("HEIRLOOM_LOG_FORMAT", "xml")
        errors = get_config_manager().validate()
        assert any(e.startswith("observability.log_format") for e in errors)

    def test_validate_clean(self):
        assert get_config_manager().validate() == []

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        genesis = schema["properties"]["runtime"]["genesis_timestamp"]
        assert genesis["type"] == "int"
        assert genesis["env_var"] == "HEIRLOOM_GENESIS_TIMESTAMP"

    def test_env_genesis_fixes_clock(self, monkeypatch):
        from heirloom.system import deploy
        monkeypatch.setenv("HEIRLOOM_GENESIS_TIMESTAMP", "1234")
        system = deploy()
        assert system.clock.is_fixed
        assert system.clock.now() == 1234

    def test_user_file_takes_precedence(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "heirloom.yaml").write_text("estate:\n  max_name_length: 22\ntoken:\n  symbol: cPRJ\n")
        (tmp_path / ".heirloom").mkdir()
        (tmp_path / ".heirloom" / "config.yaml").write_text("estate:\n  max_name_length: 11\n")
        manager = get_config_manager()
        manager.load_defaults()
        assert manager.get("estate.max_name_length") == 11
        assert manager.get("token.symbol") == "cPRJ"
