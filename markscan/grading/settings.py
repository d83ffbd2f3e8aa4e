"""Scan settings: thresholds, weights and policies for one scanning session.

Settings are persisted as YAML. A saved file may hold only the values the
user changed; everything else falls back to the defaults below.

Example ``scan_settings.yaml``::

    general:
      method: hybrid
      multiple_answer_policy: reject
    darkness:
      darkness_threshold: 25
    hybrid:
      conflict_policy: confidence
"""

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from ..config import SETTINGS_PATH, ConfigurationError

logger = logging.getLogger(__name__)


class ScanMethod(str, Enum):
    DARKNESS = "darkness"
    VISIBILITY = "visibility"
    HYBRID = "hybrid"


class MultipleAnswerPolicy(str, Enum):
    BEST = "best"
    FIRST = "first"
    REJECT = "reject"


class ConflictPolicy(str, Enum):
    DARKNESS = "darkness"
    VISIBILITY = "visibility"
    CONFIDENCE = "confidence"


@dataclass(frozen=True)
class GeneralSettings:
    method: ScanMethod = ScanMethod.DARKNESS
    multiple_answer_policy: MultipleAnswerPolicy = MultipleAnswerPolicy.BEST
    # Raise instead of reconciling malformed answer arrays or missing keys
    strict_scoring: bool = False


@dataclass(frozen=True)
class DarknessSettings:
    luminance_threshold: float = 80.0       # pixel counts as dark below this
    darkness_threshold: float = 20.0        # percent; option is marked above this
    minimum_fill: float = 15.0              # percent; weakest acceptable lone mark
    sample_step: float = 0.2              # sub-pixel sampling step
    weak_fill_factor: float = 0.6
    single_mark_factor: float = 0.9
    multiple_mark_factor: float = 0.75


@dataclass(frozen=True)
class VisibilitySettings:
    light_threshold: float = 150.0          # pixel counts as light at or above this
    visibility_threshold: float = 40.0      # percent; option is hidden below this
    sample_step: float = 0.3


@dataclass(frozen=True)
class HybridSettings:
    darkness_weight: float = 40.0           # percent
    visibility_weight: float = 60.0         # percent
    conflict_policy: ConflictPolicy = ConflictPolicy.CONFIDENCE
    preferred_damping: float = 0.7        # darkness/visibility policies
    confidence_damping: float = 0.8       # confidence policy


@dataclass(frozen=True)
class QualitySettings:
    corner_fraction: float = 0.08
    window_size: int = 12
    window_stride: int = 3
    sample_stride: int = 2
    luminance_threshold: float = 80.0
    detection_ratio: float = 0.4


@dataclass(frozen=True)
class ScanSettings:
    general: GeneralSettings = field(default_factory=GeneralSettings)
    darkness: DarknessSettings = field(default_factory=DarknessSettings)
    visibility: VisibilitySettings = field(default_factory=VisibilitySettings)
    hybrid: HybridSettings = field(default_factory=HybridSettings)
    quality: QualitySettings = field(default_factory=QualitySettings)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ScanSettings":
        """Build settings from a (possibly partial) nested dict.

        Raises:
            ConfigurationError: On unknown sections or keys, or invalid values.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError("Scan settings must be a mapping of sections")

        sections = {}
        for section in fields(cls):
            values = data.get(section.name) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Settings section '{section.name}' must be a mapping")
            sections[section.name] = _build_section(section.name, section.default_factory, values)

        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown settings sections: {', '.join(sorted(unknown))}")

        settings = cls(**sections)
        settings.validate()
        return settings

    def to_dict(self) -> dict:
        """Plain nested dict, safe to dump as YAML."""
        return _plain(asdict(self))

    def updated(self, key: str, value: Any) -> "ScanSettings":
        """Return a copy with one dotted key (``section.name``) changed."""
        section_name, _, name = key.partition(".")
        data = self.to_dict()
        if section_name not in data or name not in data[section_name]:
            raise ConfigurationError(f"Unknown setting: {key}")
        data[section_name][name] = value
        return ScanSettings.from_dict(data)

    def validate(self):
        """Check value ranges.

        Raises:
            ConfigurationError: If a value is out of range.
        """
        for name in ("darkness_threshold", "minimum_fill"):
            value = getattr(self.darkness, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"darkness.{name} must be a percentage, got {value}")
        if not 0 <= self.visibility.visibility_threshold <= 100:
            raise ConfigurationError("visibility.visibility_threshold must be a percentage")
        for section, name in (("darkness", "sample_step"), ("visibility", "sample_step")):
            if getattr(getattr(self, section), name) <= 0:
                raise ConfigurationError(f"{section}.{name} must be positive")
        if self.hybrid.darkness_weight < 0 or self.hybrid.visibility_weight < 0:
            raise ConfigurationError("hybrid weights must not be negative")
        q = self.quality
        if q.window_size < 1 or q.window_stride < 1 or q.sample_stride < 1:
            raise ConfigurationError("quality window sizes and strides must be at least 1")


def _build_section(name: str, factory, values: dict):
    default = factory()
    known = {f.name: f for f in fields(default)}
    unknown = set(values) - set(known)
    if unknown:
        raise ConfigurationError(f"Unknown settings in '{name}': {', '.join(sorted(unknown))}")

    converted = {}
    for key, raw in values.items():
        current = getattr(default, key)
        try:
            if isinstance(current, Enum):
                converted[key] = type(current)(raw)
            elif isinstance(current, bool):
                converted[key] = _to_bool(raw)
            elif isinstance(current, int):
                converted[key] = int(raw)
            else:
                converted[key] = float(raw)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {name}.{key}: {raw!r}") from e
    return replace(default, **converted)


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _plain(value):
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


def load_settings(path: Optional[Path] = None) -> ScanSettings:
    """Load settings from YAML, falling back to defaults when the file is absent."""
    path = Path(path or SETTINGS_PATH)
    if not path.exists():
        logger.debug("No settings file at %s, using defaults", path)
        return ScanSettings()

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse settings file {path}: {e}") from e

    return ScanSettings.from_dict(data)


def save_settings(settings: ScanSettings, path: Optional[Path] = None) -> Path:
    """Write the full settings to YAML and return the path."""
    path = Path(path or SETTINGS_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(settings.to_dict(), f, sort_keys=False)
    logger.info("Saved scan settings to %s", path)
    return path


def reset_settings(path: Optional[Path] = None) -> ScanSettings:
    """Remove the saved settings file and return the defaults."""
    path = Path(path or SETTINGS_PATH)
    if path.exists():
        path.unlink()
        logger.info("Removed scan settings file %s", path)
    return ScanSettings()
