"""Configuration paths and defaults for callscope."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CALLSCOPE_HOME", str(Path.home() / ".callscope"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_MAX_DEPTH = 10
DEFAULT_RECEIVER_TEXT_LIMIT = 50
DEFAULT_SEQUENCE_DEPTH = 0
