"""
Configuration for tempokey.

A TOML file with three sections:

- [tempo]  onset framing, analysis span, optional high-pass, interval selector
- [key]    chroma framing and analysis span
- [worker] per-request timeout and batch concurrency

Values outside PARAM_BOUNDS are rejected; anything left out is taken from
DEFAULT_CONFIG. Detection thresholds (minimum peaks and intervals, minimum
duration, default tempo) live in tempokey.analyze and cannot be tuned here.
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, Optional
import toml
import logging

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "TEMPOKEY_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "configs/tempokey.toml"


class ConfigError(Exception):
    """Raised when a config file cannot be parsed or holds invalid values."""
    pass


class Config:
    """Validated tempokey settings, read through get() or config["section"]."""

    # (min, max) inclusive; None marks non-numeric params
    PARAM_BOUNDS = {
        "tempo": {
            "window_size": (256, 8192),
            "hop_size": (64, 4096),
            "max_analysis_seconds": (5.0, 600.0),
            "highpass": None,
            "interval_selector": None,
        },
        "key": {
            "fft_size": (1024, 16384),
            "hop_size": (256, 16384),
            "max_analysis_seconds": (5.0, 600.0),
        },
        "worker": {
            "timeout_seconds": (5, 600),
            "max_workers": (1, 32),
        },
    }

    CHOICES = {
        ("tempo", "interval_selector"): ("median", "histogram"),
    }

    # Frame length each section's hop_size is checked against
    WINDOW_PARAMS = {"tempo": "window_size", "key": "fft_size"}

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "tempo": {
            "window_size": 2048,
            "hop_size": 512,
            "max_analysis_seconds": 60.0,
            "highpass": False,
            "interval_selector": "median",
        },
        "key": {
            "fft_size": 4096,
            "hop_size": 2048,
            "max_analysis_seconds": 45.0,
        },
        "worker": {
            "timeout_seconds": 30,
            "max_workers": 2,
        },
    }

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_dict: Parsed settings; None means DEFAULT_CONFIG. Missing
                sections and params are filled in place.

        Raises:
            ConfigError: If a value is out of bounds or of the wrong kind
        """
        if config_dict is None:
            config_dict = copy.deepcopy(self.DEFAULT_CONFIG)
        self.data = config_dict
        self._fill_defaults()
        self._validate()

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Read settings from a TOML file.

        The path is, in order: the argument, $TEMPOKEY_CONFIG_PATH, then
        configs/tempokey.toml. A file that does not exist gives the defaults.

        Raises:
            ConfigError: If the file does not parse or fails validation
        """
        if config_path is None:
            config_path = os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls()

        try:
            config_dict = toml.load(config_path)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _fill_defaults(self) -> None:
        for section, defaults in self.DEFAULT_CONFIG.items():
            if not isinstance(defaults, dict):
                self.data.setdefault(section, defaults)
                continue
            section_data = self.data.setdefault(section, {})
            if not isinstance(section_data, dict):
                raise ConfigError(f"Config section [{section}] must be a table")
            for param, default_val in defaults.items():
                if param not in section_data:
                    logger.debug(f"{section}.{param} not set, using {default_val!r}")
                    section_data[param] = copy.deepcopy(default_val)

    def _validate(self) -> None:
        for section, params in self.PARAM_BOUNDS.items():
            for param, bounds in params.items():
                value = self.data[section][param]
                name = f"{section}.{param}"

                choices = self.CHOICES.get((section, param))
                if choices is not None and value not in choices:
                    raise ConfigError(f"Parameter {name}={value!r} must be one of {list(choices)}")

                if bounds is None:
                    continue

                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"Parameter {name}={value!r} must be numeric")

                min_val, max_val = bounds
                if not (min_val <= value <= max_val):
                    raise ConfigError(f"Parameter {name}={value} out of bounds [{min_val}, {max_val}]")

        for section, window_param in self.WINDOW_PARAMS.items():
            if self.data[section]["hop_size"] > self.data[section][window_param]:
                raise ConfigError(f"Parameter {section}.hop_size must not exceed {section}.{window_param}")

        logger.debug("✅ Config validation passed")

    def get(self, section: str, param: str, default: Any = None) -> Any:
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        return self.data.get(section, {})

    def __repr__(self) -> str:
        return f"Config(version={self.data.get('config_version', 'unknown')})"
