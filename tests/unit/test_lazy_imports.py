"""Tests for the lazy top-level ``clawmesh`` namespace."""

from __future__ import annotations

import importlib

import pytest

import clawmesh


class TestLazyImports:
    @pytest.mark.parametrize("name", sorted(clawmesh._LAZY_IMPORTS))
    def test_resolves_to_subpackage_attribute(self, name: str) -> None:
        module_path, attr_name = clawmesh._LAZY_IMPORTS[name]
        expected = getattr(importlib.import_module(module_path), attr_name)
        assert getattr(clawmesh, name) is expected

    def test_all_matches_lazy_table(self) -> None:
        assert set(clawmesh.__all__) == set(clawmesh._LAZY_IMPORTS)
        assert sorted(dir(clawmesh)) == sorted(clawmesh.__all__)

    def test_unknown_attribute(self) -> None:
        with pytest.raises(AttributeError, match="no attribute 'nope'"):
            _ = clawmesh.nope  # type: ignore[attr-defined]

    def test_version(self) -> None:
        assert isinstance(clawmesh.__version__, str)

    @pytest.mark.parametrize("package", ["models", "core", "utils", "nips", "services"])
    def test_subpackage_all_is_importable(self, package: str) -> None:
        module = importlib.import_module(f"clawmesh.{package}")
        for name in module.__all__:
            assert hasattr(module, name), f"clawmesh.{package}.{name}"
