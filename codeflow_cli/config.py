"""Configuration paths and TOML-backed graph options."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .models import GraphBuildOptions

logger = logging.getLogger(__name__)

BASE_DIR = Path(os.environ.get("CODEFLOW_HOME", str(Path.home() / ".codeflow"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
GRAPH_SECTION = "graph"

DEFAULT_GRAPH_OPTIONS = GraphBuildOptions()
GRAPH_OPTION_NAMES = tuple(f.name for f in dataclasses.fields(GraphBuildOptions))


def ensure_base_dirs() -> None:
    """Create the base directory for local configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections); {} when absent or unreadable."""
    path = config_file or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_graph_options(config_file: Optional[Path] = None) -> GraphBuildOptions:
    """Read the ``[graph]`` table over the defaults.

    Raises:
        ValueError: if a configured value has the wrong type or is negative.
    """
    section = load_full_config(config_file).get(GRAPH_SECTION, {})
    if not isinstance(section, dict):
        logger.warning("Ignoring non-table [%s] entry in config", GRAPH_SECTION)
        return DEFAULT_GRAPH_OPTIONS

    values: Dict[str, Any] = {}
    for key, value in section.items():
        if key not in GRAPH_OPTION_NAMES:
            logger.warning("Unknown [%s] option '%s' ignored", GRAPH_SECTION, key)
            continue
        values[key] = value
    try:
        return dataclasses.replace(DEFAULT_GRAPH_OPTIONS, **values)
    except ValueError as exc:
        raise ValueError(f"Invalid [{GRAPH_SECTION}] config in {config_file or CONFIG_FILE}: {exc}") from exc


def save_graph_options(options: GraphBuildOptions, config_file: Optional[Path] = None) -> bool:
    """Write *options* to the ``[graph]`` table, preserving other sections."""
    path = config_file or CONFIG_FILE
    config = load_full_config(path)
    config[GRAPH_SECTION] = dataclasses.asdict(options)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.error("Could not write config file %s: %s", path, exc)
        return False


def parse_option_value(key: str, raw: str) -> Any:
    """Convert a command-line string to the type of graph option *key*."""
    if key not in GRAPH_OPTION_NAMES:
        raise ValueError(f"Unknown option '{key}'. Choose from: {', '.join(GRAPH_OPTION_NAMES)}")
    if isinstance(getattr(DEFAULT_GRAPH_OPTIONS, key), bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Option '{key}' expects true/false, got '{raw}'")
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Option '{key}' expects an integer, got '{raw}'") from None
