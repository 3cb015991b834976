"""Unit tests for core.yaml module."""

from __future__ import annotations

from pathlib import Path

import pytest

from clawmesh.core.exceptions import ConfigurationError
from clawmesh.core.yaml import load_yaml


class TestLoadYaml:
    """load_yaml()."""

    def test_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("relays:\n  - wss://nos.lol\ntimeouts:\n  lookup: 3\n")
        assert load_yaml(path) == {"relays": ["wss://nos.lol"], "timeouts": {"lookup": 3}}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("relays: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)

    def test_safe_load(self, tmp_path: Path) -> None:
        """Python object tags are refused."""
        path = tmp_path / "evil.yaml"
        path.write_text("x: !!python/object/apply:os.system ['true']\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)
