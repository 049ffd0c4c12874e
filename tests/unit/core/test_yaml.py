"""
Unit tests for core.yaml module.

Tests:
- load_yaml() parsing of mappings and empty files
- Missing files, invalid YAML, and non-mapping roots
"""

from pathlib import Path

import pytest

from nodewatch.core.exceptions import ConfigurationError
from nodewatch.core.yaml import load_yaml


class TestLoadYaml:
    """YAML file loading."""

    def test_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "dashboard.yaml"
        path.write_text("runtime:\n  url: http://127.0.0.1:8332\n  poll_interval: 10\n")
        assert load_yaml(str(path)) == {
            "runtime": {"url": "http://127.0.0.1:8332", "poll_interval": 10}
        }

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(str(path)) == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_yaml(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("runtime: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(str(path))

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_yaml(str(path))

    def test_python_tags_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "tag.yaml"
        path.write_text("x: !!python/object/apply:os.system ['true']\n")
        with pytest.raises(ConfigurationError):
            load_yaml(str(path))
