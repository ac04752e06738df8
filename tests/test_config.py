"""
Unit tests for TOML configuration loading and validation.
"""

import pytest
from tempokey.config import Config, ConfigError


@pytest.fixture
def write_config(tmp_path):
    """Write a TOML string to a temp file and return its path."""
    def _write(text):
        path = tmp_path / "tempokey.toml"
        path.write_text(text)
        return str(path)
    return _write


class TestConfigDefaults:
    """Test default values."""

    def test_defaults(self):
        config = Config()
        assert config.get("tempo", "window_size") == 2048
        assert config.get("tempo", "hop_size") == 512
        assert config.get("key", "fft_size") == 4096
        assert config.get("worker", "timeout_seconds") == 30

    def test_defaults_not_shared(self):
        """Mutating one Config must not leak into the class defaults."""
        a = Config()
        a["worker"]["max_workers"] = 8
        assert Config()["worker"]["max_workers"] == 2

    def test_missing_file_uses_defaults(self, tmp_path):
        config = Config.load(str(tmp_path / "nope.toml"))
        assert config.get("tempo", "interval_selector") == "median"

    def test_missing_section_filled(self):
        config = Config({"tempo": {"window_size": 4096}})
        assert config.get("tempo", "window_size") == 4096
        assert config.get("tempo", "hop_size") == 512
        assert config.get("key", "hop_size") == 2048

    def test_get_default(self):
        assert Config().get("tempo", "unknown", "fallback") == "fallback"

    def test_repr(self):
        assert repr(Config()) == "Config(version=1.0)"


class TestConfigLoad:
    """Test loading TOML files."""

    def test_load_file(self, write_config):
        path = write_config(
            '[tempo]\nwindow_size = 1024\nhop_size = 256\ninterval_selector = "histogram"\n'
            "[worker]\ntimeout_seconds = 10\n"
        )
        config = Config.load(path)
        assert config.get("tempo", "window_size") == 1024
        assert config.get("tempo", "interval_selector") == "histogram"
        assert config.get("worker", "timeout_seconds") == 10
        assert config.get("worker", "max_workers") == 2

    def test_env_var_path(self, write_config, monkeypatch):
        path = write_config("[key]\nfft_size = 8192\n")
        monkeypatch.setenv("TEMPOKEY_CONFIG_PATH", path)
        assert Config.load().get("key", "fft_size") == 8192

    def test_parse_error(self, write_config):
        path = write_config("[tempo\nwindow_size = ")
        with pytest.raises(ConfigError):
            Config.load(path)


class TestConfigValidation:
    """Test bounds and choices."""

    @pytest.mark.parametrize(
        "section, param, value",
        [
            ("tempo", "window_size", 100),
            ("tempo", "hop_size", 10000),
            ("tempo", "max_analysis_seconds", 1.0),
            ("key", "fft_size", 65536),
            ("worker", "timeout_seconds", 1),
            ("worker", "max_workers", 0),
        ],
    )
    def test_out_of_bounds(self, section, param, value):
        data = {section: {param: value}}
        with pytest.raises(ConfigError, match="out of bounds"):
            Config(data)

    def test_bad_choice(self):
        with pytest.raises(ConfigError, match="must be one of"):
            Config({"tempo": {"interval_selector": "mode"}})

    def test_non_numeric(self):
        with pytest.raises(ConfigError, match="numeric"):
            Config({"key": {"fft_size": "big"}})

    def test_bool_is_not_numeric(self):
        with pytest.raises(ConfigError):
            Config({"worker": {"max_workers": True}})

    def test_hop_larger_than_window(self):
        with pytest.raises(ConfigError, match="hop_size"):
            Config({"tempo": {"window_size": 512, "hop_size": 1024}})

    def test_section_must_be_table(self):
        with pytest.raises(ConfigError, match="table"):
            Config({"worker": 5})

    def test_partial_section_filled(self):
        """Params left out of a section come from the defaults, others are kept."""
        config = Config({"key": {"fft_size": 8192}, "worker": {"max_workers": 4}})
        assert config.get("key", "fft_size") == 8192
        assert config.get("key", "max_analysis_seconds") == 45.0
        assert config.get("worker", "max_workers") == 4
        assert config.get("worker", "timeout_seconds") == 30
        assert config.get("tempo", "highpass") is False
