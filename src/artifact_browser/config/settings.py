"""Configuration management for ArtifactBrowser.

Uses attrs with validators for type-safe, validated configuration.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable

import attrs
from attrs import define, field
from loguru import logger


def positive_float(instance, attribute, value):
    """Validator: ensure value is a positive float."""
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


def positive_int(instance, attribute, value):
    """Validator: ensure value is a positive integer."""
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


def optional_positive_float(instance, attribute, value):
    """Validator: None or a positive number."""
    if value is not None and value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


def ylim_spec(instance, attribute, value):
    """Validator: 'maxabs', 'maxmin' or a two-element [ymin, ymax] list."""
    if isinstance(value, str):
        if value not in ("maxabs", "maxmin"):
            raise ValueError(f"{attribute.name} must be 'maxabs', 'maxmin' or [ymin, ymax], got {value!r}")
        return
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"{attribute.name} must be 'maxabs', 'maxmin' or [ymin, ymax], got {value!r}")
    if not all(isinstance(v, (int, float)) for v in value) or value[0] >= value[1]:
        raise ValueError(f"{attribute.name} must satisfy ymin < ymax, got {value!r}")


@define
class DisplayConfig:
    """Segmentation and display settings."""

    # Window duration in seconds; None means one trial (trial data) or 1 s (continuous)
    window_duration: float | None = field(default=None, validator=optional_positive_float)
    # None means: continuous when the data holds a single trial
    continuous: bool | None = field(default=None, validator=attrs.validators.optional(attrs.validators.instance_of(bool)))
    ylim: str | list[float] = field(default="maxabs", validator=ylim_spec)
    view_mode: str = field(default="vertical", validator=attrs.validators.in_(["vertical", "butterfly"]))

    # Channel selection (None = all header channels)
    channel: list[str] | None = field(default=None)
    channel_clamped: list[str] = field(factory=list, validator=attrs.validators.instance_of(list))
    channel_scale: dict[str, float] = field(factory=dict, validator=attrs.validators.instance_of(dict))

    plot_events: bool = field(default=True, validator=attrs.validators.instance_of(bool))


@define
class SelectionConfig:
    """What selections do."""

    select_mode: str = field(
        default="markartifact",
        validator=attrs.validators.in_(["markartifact", "markpeakevent", "marktroughevent"]),
    )
    seldat: str = field(default="current", validator=attrs.validators.in_(["current", "all"]))
    # Analyses offered for a selection, in menu order (names in the analysis registry)
    analyses: list[str] = field(
        factory=lambda: ["simple_fft", "channel_variance"], validator=attrs.validators.instance_of(list)
    )
    # Extra configuration per analysis name
    analysis_config: dict[str, dict[str, Any]] = field(factory=dict, validator=attrs.validators.instance_of(dict))


@define
class PreprocConfig:
    """On-the-fly preprocessing of displayed data (all off by default)."""

    demean: bool = field(default=False, validator=attrs.validators.instance_of(bool))
    # [begin, end] in seconds; None = whole block
    baseline_window: list[float] | None = field(default=None)
    detrend: bool = field(default=False, validator=attrs.validators.instance_of(bool))

    lpfilter: bool = field(default=False, validator=attrs.validators.instance_of(bool))
    lpfreq: float = field(default=30.0, validator=[attrs.validators.instance_of(float), positive_float])
    hpfilter: bool = field(default=False, validator=attrs.validators.instance_of(bool))
    hpfreq: float = field(default=0.5, validator=[attrs.validators.instance_of(float), positive_float])
    bpfilter: bool = field(default=False, validator=attrs.validators.instance_of(bool))
    bpfreq: list[float] = field(factory=lambda: [0.5, 30.0])
    notch: bool = field(default=False, validator=attrs.validators.instance_of(bool))
    notch_freq: float = field(default=50.0, validator=[attrs.validators.instance_of(float), positive_float])
    filter_order: int = field(default=4, validator=[attrs.validators.instance_of(int), positive_int])

    @bpfreq.validator
    def _check_band_order(self, attribute, value):
        """Ensure the band is [low, high] with low < high."""
        if len(value) != 2 or value[0] >= value[1]:
            raise ValueError(f"bpfreq must be [low, high] with low < high, got {value}")


@define
class BrowserConfig:
    """Main browser configuration combining all sub-configs."""

    display: DisplayConfig = field(factory=DisplayConfig)
    selection: SelectionConfig = field(factory=SelectionConfig)
    preproc: PreprocConfig = field(factory=PreprocConfig)

    @classmethod
    def default(cls) -> BrowserConfig:
        """Create default configuration."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BrowserConfig:
        """Create configuration from dictionary."""
        return cls(
            display=DisplayConfig(**data.get("display", {})),
            selection=SelectionConfig(**data.get("selection", {})),
            preproc=PreprocConfig(**data.get("preproc", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return attrs.asdict(self)

    def save(self, filepath: str | Path) -> None:
        """Save configuration to JSON file."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str | Path) -> BrowserConfig:
        """Load configuration from JSON file."""
        with open(filepath) as f:
            data = json.load(f)
        return cls.from_dict(data)


def _parse_ylim(value: str) -> str | list[float]:
    value = value.strip()
    if value.startswith("["):
        return [float(v) for v in json.loads(value)]
    return value


# Environment variable suffix -> (section, attribute, parser)
ENV_PREFIX = "ABR_"
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "WINDOW_DURATION": ("display", "window_duration", float),
    "YLIM": ("display", "ylim", _parse_ylim),
    "VIEW_MODE": ("display", "view_mode", str),
    "SELECT_MODE": ("selection", "select_mode", str),
    "SELDAT": ("selection", "seldat", str),
}


class ConfigManager:
    """Loads the browser configuration from a config directory.

    A user config takes precedence over the default config; a default config
    is written on first use. ``ABR_*`` environment variables listed in
    ENV_OVERRIDES are applied on top. A session created from a manager reads
    ``get_config()`` once, at setup.
    """

    def __init__(self, config_dir: str | Path | None = None):
        """Initialize config manager.

        Args:
            config_dir: Directory for config files. Defaults to ~/.artifact_browser/
        """
        if config_dir is None:
            config_dir = Path.home() / ".artifact_browser"
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.user_config_path = self.config_dir / "user_config.json"
        self.default_config_path = self.config_dir / "default_config.json"

        self._config: BrowserConfig | None = None

    def get_config(self) -> BrowserConfig:
        """Get current configuration with environment variable overrides."""
        if self._config is None:
            self._config = self._load_config()
            self._apply_env_overrides(self._config)
        return self._config

    def _load_config(self) -> BrowserConfig:
        """Load configuration from user or default file."""
        for path in (self.user_config_path, self.default_config_path):
            if path.exists():
                logger.debug(f"Loading browser configuration from {path}")
                return BrowserConfig.load(path)

        config = BrowserConfig.default()
        config.save(self.default_config_path)
        logger.info(f"Wrote default browser configuration to {self.default_config_path}")
        return config

    @staticmethod
    def _apply_env_overrides(config: BrowserConfig) -> None:
        """Apply ``ABR_*`` environment overrides in place.

        A value that fails to parse or validate is logged and skipped, leaving
        the file value in effect.
        """
        for suffix, (section, attr, parse) in ENV_OVERRIDES.items():
            var = f"{ENV_PREFIX}{suffix}"
            if var not in os.environ:
                continue
            try:
                setattr(getattr(config, section), attr, parse(os.environ[var]))
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring {var}={os.environ[var]!r}: {e}")
                continue
            logger.debug(f"{var} overrides {section}.{attr}")

    def save_user_config(self) -> None:
        """Save current configuration as user config."""
        if self._config is not None:
            self._config.save(self.user_config_path)

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults."""
        self._config = BrowserConfig.default()
        if self.user_config_path.exists():
            self.user_config_path.unlink()
