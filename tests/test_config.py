"""
Tests for atlas_residence.config — YAML config loading.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from atlas_residence.config import load_config


class TestLoadConfig:
    def test_pipeline_config_has_sections(self) -> None:
        cfg = load_config("pipeline")
        for section in ("data", "cleaning", "residence"):
            assert section in cfg, f"Missing config section: {section}"

    def test_median_window_is_odd(self) -> None:
        assert load_config("pipeline")["cleaning"]["median_window"] % 2 == 1

    def test_missing_config_lists_alternatives(self) -> None:
        with pytest.raises(FileNotFoundError, match="pipeline"):
            load_config("does_not_exist")

    def test_custom_directory(self, tmp_path: Path) -> None:
        (tmp_path / "local.yaml").write_text("residence:\n  radius: 12.5\n", encoding="utf-8")
        assert load_config("local", configs_dir=tmp_path)["residence"]["radius"] == 12.5

    def test_empty_file_gives_empty_dict(self, tmp_path: Path) -> None:
        (tmp_path / "blank.yaml").write_text("", encoding="utf-8")
        assert load_config("blank", configs_dir=tmp_path) == {}
