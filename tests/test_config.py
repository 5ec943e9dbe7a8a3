"""
Tests for configuration loading and environment overrides.
"""

import pytest
from ecolog.config import EcologConfig, PerformanceConfig, find_config
from ecolog.core.errors import ConfigError
from ecolog.core.masking import PartialMode


class TestFromDict:
    """Test building configuration from mappings."""

    def test_defaults(self):
        config = EcologConfig()

        assert config.path == "."
        assert config.shelter.mask_char == "*"
        assert config.shelter.skip_comments is True
        assert config.performance.batch_size == 50
        assert config.load_shell.enabled is False
        assert config.types is True

    def test_nested_sections(self):
        config = EcologConfig.from_dict({
            "preferred_environment": "production",
            "shelter": {"mask_char": "#", "partial_mode": True},
            "performance": {"batch_size": 10},
            "types": ["boolean", "number"],
        })

        assert config.preferred_environment == "production"
        assert config.performance.batch_size == 10
        policy = config.shelter.policy()
        assert policy.mask_char == "#"
        assert policy.partial_mode == PartialMode()

    def test_load_shell_bool(self):
        config = EcologConfig.from_dict({"load_shell": True})
        assert config.load_shell.enabled is True
        assert config.load_shell.override is False

    @pytest.mark.parametrize("data", [
        {"colour": "red"},
        {"shelter": {"mask_chars": "#"}},
        {"performance": {"cache": 1}},
        {"shelter": "loud"},
    ])
    def test_unknown_options(self, data):
        with pytest.raises(ConfigError):
            EcologConfig.from_dict(data)

    @pytest.mark.parametrize("data", [
        {"performance": {"batch_size": "50"}},
        {"performance": {"auto_cleanup": "yes"}},
        {"performance": {"parsed_cache_size": True}},
        {"shelter": {"mask_length": "8"}},
        {"shelter": {"partial_mode": "on"}},
        {"load_shell": {"enabled": "yes"}},
        {"types": "all"},
        {"path": 42},
    ])
    def test_wrong_value_types(self, data):
        with pytest.raises(ConfigError):
            EcologConfig.from_dict(data)

    def test_optional_and_union_values(self):
        config = EcologConfig.from_dict({
            "shelter": {"mask_length": None, "partial_mode": {"show_start": 2}},
            "types": False,
            "custom_types": {"port": {"pattern": "^\\d+$"}},
        })

        assert config.shelter.mask_length is None
        assert config.shelter.policy().partial_mode == PartialMode(show_start=2)
        assert config.types is False


class TestLoad:
    """Test loading YAML files."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("shelter:\n  mask_char: '#'\n  mask_length: 8\nlog_level: DEBUG\n")

        config = EcologConfig.load(str(path), environ={})

        assert config.shelter.mask_char == "#"
        assert config.shelter.mask_length == 8
        assert config.log_level == "DEBUG"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert EcologConfig.load(str(path), environ={}).shelter.mask_char == "*"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("shelter: [unclosed\n")
        with pytest.raises(ConfigError):
            EcologConfig.load(str(path), environ={})

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            EcologConfig.load(str(path), environ={})

    def test_quoted_number_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("performance:\n  batch_size: \"50\"\n")
        with pytest.raises(ConfigError):
            EcologConfig.load(str(path), environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EcologConfig.load(str(tmp_path / "missing.yaml"), environ={})

    def test_environment_wins(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("shelter:\n  mask_char: '#'\n")

        config = EcologConfig.load(str(path), environ={"ECOLOG_MASK_CHAR": "x"})
        assert config.shelter.mask_char == "x"


class TestEnvOverrides:
    """Test ECOLOG_* environment variables."""

    def test_overrides(self):
        config = EcologConfig().apply_env_overrides({
            "ECOLOG_MASK_CHAR": "#",
            "ECOLOG_PARTIAL": "1",
            "ECOLOG_MASK_LENGTH": "8",
            "ECOLOG_PRESETS_FILE": "/tmp/presets.json",
            "ECOLOG_LOG_LEVEL": "DEBUG",
            "ECOLOG_PATH": "/srv/app",
        })

        assert config.shelter.mask_char == "#"
        assert config.shelter.partial_mode is True
        assert config.shelter.mask_length == 8
        assert config.presets_file == "/tmp/presets.json"
        assert config.log_level == "DEBUG"
        assert config.path == "/srv/app"

    def test_partial_off(self):
        config = EcologConfig.from_dict({"shelter": {"partial_mode": True}})
        config.apply_env_overrides({"ECOLOG_PARTIAL": "false"})
        assert config.shelter.partial_mode is False

    def test_bad_mask_length(self):
        with pytest.raises(ConfigError):
            EcologConfig().apply_env_overrides({"ECOLOG_MASK_LENGTH": "eight"})


class TestFindConfig:
    """Test config file lookup order."""

    @pytest.fixture(autouse=True)
    def isolated_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ECOLOG_CONFIG", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))

    def test_nothing_found(self, tmp_path):
        assert find_config(str(tmp_path)) is None

    def test_project_config(self, tmp_path):
        (tmp_path / ".ecolog.yaml").write_text("{}\n")
        assert find_config(str(tmp_path)) == str(tmp_path / ".ecolog.yaml")

    def test_env_var_first(self, tmp_path, monkeypatch):
        (tmp_path / ".ecolog.yaml").write_text("{}\n")
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("{}\n")
        monkeypatch.setenv("ECOLOG_CONFIG", str(explicit))

        assert find_config(str(tmp_path)) == str(explicit)

    def test_user_config(self, tmp_path):
        user_config = tmp_path / "home" / ".config" / "ecolog" / "config.yaml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text("{}\n")

        assert find_config(str(tmp_path)) == str(user_config)


class TestPerformanceConfig:
    """Test runtime performance updates."""

    def test_update(self):
        config = PerformanceConfig().update(batch_size=5, auto_cleanup=False)
        assert config.batch_size == 5
        assert config.auto_cleanup is False

    def test_unknown_option(self):
        with pytest.raises(ConfigError):
            PerformanceConfig().update(turbo=True)

    def test_wrong_type(self):
        with pytest.raises(ConfigError):
            PerformanceConfig().update(batch_size="5")
