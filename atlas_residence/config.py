"""
Config loader for the ATLAS residence patch pipeline.

All configuration lives in the configs/ directory as YAML files. The
pipeline scripts read their paths and parameters through this module.

Usage:

    from atlas_residence.config import load_config

    cfg = load_config("pipeline")
    raw_csv = cfg["data"]["raw_tracks_csv"]
    radius = cfg["residence"]["radius"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# Resolved relative to this file so callers can run from any directory.
_CONFIGS_DIR = Path(__file__).parent.parent / "configs"


def load_config(name: str, configs_dir: Path | str | None = None) -> dict[str, Any]:
    """
    Load a named YAML config file from the configs/ directory.

    Args:
        name: Config file name without the .yaml extension, e.g. "pipeline".
        configs_dir: Directory to look in instead of the project configs/.

    Returns:
        The parsed YAML contents as a nested dictionary.

    Raises:
        FileNotFoundError: If <configs_dir>/<name>.yaml does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    base = Path(configs_dir) if configs_dir is not None else _CONFIGS_DIR
    path = base / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            f"Expected one of: {[p.stem for p in base.glob('*.yaml')]}"
        )
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
