"""Configuration manager for callscope using TOML files.

The file has two sections, both optional::

    [analysis]
    max_depth = 10
    receiver_text_limit = 50
    include_tests = true
    extra_skip_dirs = ["vendor"]

    [sequence]
    default_depth = 0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config

logger = logging.getLogger(__name__)

SECTIONS = ("analysis", "sequence")


@dataclass
class AnalysisSettings:
    max_depth: int = config.DEFAULT_MAX_DEPTH
    receiver_text_limit: int = config.DEFAULT_RECEIVER_TEXT_LIMIT
    include_tests: bool = True
    extra_skip_dirs: List[str] = field(default_factory=list)
    sequence_default_depth: int = config.DEFAULT_SEQUENCE_DEPTH

    def to_sections(self) -> Dict[str, Dict[str, Any]]:
        return {
            "analysis": {
                "max_depth": self.max_depth,
                "receiver_text_limit": self.receiver_text_limit,
                "include_tests": self.include_tests,
                "extra_skip_dirs": list(self.extra_skip_dirs),
            },
            "sequence": {"default_depth": self.sequence_default_depth},
        }


# Maps "<section>.<key>" -> AnalysisSettings attribute
_SETTING_KEYS: Dict[str, str] = {
    "analysis.max_depth": "max_depth",
    "analysis.receiver_text_limit": "receiver_text_limit",
    "analysis.include_tests": "include_tests",
    "analysis.extra_skip_dirs": "extra_skip_dirs",
    "sequence.default_depth": "sequence_default_depth",
}


def _config_path(path: Optional[Path]) -> Path:
    return path if path is not None else config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections); a broken file counts as empty."""
    config_file = _config_path(path)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_file, exc)
        return {}


def _save_full_config(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Write entire config dict to TOML file, preserving all sections."""
    config_file = _config_path(path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w", encoding="utf-8") as f:
        toml.dump(data, f)


def load_settings(path: Optional[Path] = None) -> AnalysisSettings:
    """Merge ``[analysis]`` and ``[sequence]`` over the defaults."""
    data = load_full_config(path)
    settings = AnalysisSettings()
    for section in SECTIONS:
        for key, value in data.get(section, {}).items():
            attr = _SETTING_KEYS.get(f"{section}.{key}")
            if attr is None:
                logger.debug("Unknown config key %s.%s", section, key)
                continue
            setattr(settings, attr, _coerce(attr, value))
    return settings


def save_setting(section: str, key: str, value: Any, path: Optional[Path] = None) -> AnalysisSettings:
    """Set one ``section.key`` value, keeping every other section as is.

    Raises ``KeyError`` for keys that are not known settings and
    ``ValueError`` when the value does not fit the setting's type.
    """
    attr = _SETTING_KEYS.get(f"{section}.{key}")
    if attr is None:
        raise KeyError(f"unknown setting '{section}.{key}'")
    coerced = _coerce(attr, value)
    data = load_full_config(path)
    data.setdefault(section, {})[key] = coerced
    _save_full_config(data, path)
    return load_settings(path)


def setting_keys() -> List[str]:
    return list(_SETTING_KEYS)


def _coerce(attr: str, value: Any) -> Any:
    default = getattr(AnalysisSettings(), attr)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{attr} expects a boolean, got {value!r}")
    if isinstance(default, int):
        number = int(value)
        if number < 0:
            raise ValueError(f"{attr} must be non-negative")
        return number
    if isinstance(default, list):
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(v) for v in value]
    return value
