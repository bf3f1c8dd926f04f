"""Tests for configuration and formatting helpers."""

from pathlib import Path

import pytest

from chronic_cea.utils import PROJECT_ROOT, format_currency, format_qalys, load_config, resolve_path


class TestFormatting:
    """Report number formatting."""

    @pytest.mark.parametrize("value, expected", [
        (55188718.54, "$55.19M"),
        (2500000000.0, "$2500.00M"),
        (66045.28, "$66.0K"),
        (-10857.0, "-$10.9K"),
        (12.5, "$12.50"),
    ])
    def test_currency(self, value, expected):
        assert format_currency(value) == expected

    def test_qalys(self):
        assert format_qalys(7503.4767) == "7,503.477"


class TestConfigPaths:
    """Config loading and path resolution."""

    def test_default_config_has_model_sections(self):
        config = load_config()
        for section in ["paths", "data", "model", "transitions", "psa"]:
            assert section in config

    def test_relative_path_anchored_at_root(self):
        assert resolve_path("outputs/tables") == PROJECT_ROOT / "outputs" / "tables"

    def test_absolute_path_unchanged(self, tmp_path):
        assert resolve_path(str(tmp_path)) == Path(tmp_path)
