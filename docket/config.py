"""Load and validate .docket/config.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from docket.errors import DocketError

DOCKET_DIR = ".docket"

# Default config values
DEFAULTS: dict[str, Any] = {
    "docs_dir": "design/docs",
    "index": {
        "file": "00-index.md",
        "json_file": "00-index.json",
        "title": "Design Document Index",
    },
    "quarantine": {
        "dir": ".dustbin",
        "preserve_structure": True,
    },
    "vcs": {
        "backend": "git",
        "auto_stage": True,
        "timeout": 30,
    },
    "scan": {
        "source": "vcs",
    },
    "defaults": {
        "author": None,
    },
}

VCS_BACKENDS = ("git", "none")
SCAN_SOURCES = ("vcs", "filesystem")


class ConfigError(DocketError):
    """Raised when config is invalid or missing."""


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate(config: dict) -> None:
    """Validate required fields in config."""
    docs_dir = config.get("docs_dir")
    if not isinstance(docs_dir, str) or not docs_dir.strip():
        raise ConfigError("'docs_dir' must be a non-empty string")

    for section in ("index", "quarantine", "vcs", "scan", "defaults"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")

    index_file = config["index"].get("file")
    if not isinstance(index_file, str) or "/" in index_file or not index_file.endswith(".md"):
        raise ConfigError("'index.file' must be a bare markdown filename like 00-index.md")

    quarantine_dir = config["quarantine"].get("dir")
    if not isinstance(quarantine_dir, str) or not quarantine_dir or "/" in quarantine_dir:
        raise ConfigError("'quarantine.dir' must be a single directory name")

    backend = config["vcs"].get("backend")
    if backend not in VCS_BACKENDS:
        raise ConfigError(
            f"Unsupported vcs backend '{backend}'. Built-in: {', '.join(VCS_BACKENDS)}."
        )

    timeout = config["vcs"].get("timeout")
    if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError("'vcs.timeout' must be a positive integer (seconds)")

    source = config["scan"].get("source")
    if source not in SCAN_SOURCES:
        raise ConfigError(
            f"Unsupported scan source '{source}'. Built-in: {', '.join(SCAN_SOURCES)}."
        )


def config_path(project_root: Path) -> Path:
    return Path(project_root) / DOCKET_DIR / "config.yaml"


def store_path(project_root: Path) -> Path:
    return Path(project_root) / DOCKET_DIR / "state.json"


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .docket/config.yaml under project_root.

    Falls back to cwd if project_root is None. Merges with DEFAULTS
    so callers always get a full config dict.
    """
    root = Path(project_root) if project_root else Path.cwd()
    path = config_path(root)

    if not path.exists():
        raise ConfigError(f"Config not found: {path} (run 'docket init' first)")

    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(DEFAULTS, raw)
    _validate(config)
    return config
