"""Shared pytest setup: point the config loader at the repository's service.yaml."""

import os
from pathlib import Path

CONFIG_FILE = Path(__file__).resolve().parent.parent / "config" / "service.yaml"

os.environ.setdefault("CONFIG_PATH", str(CONFIG_FILE))
