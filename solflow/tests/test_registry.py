"""Tests for the configuration registry."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from solflow.analyzer.configurations import BUILTIN_CONFIGURATIONS, Reentrancy, TaintedArrayIndex
from solflow.analyzer.configurations.registry import ConfigurationRegistry, registry
from solflow.core.configuration import Configuration, FunctionalConfiguration
from solflow.core.errors import UnknownConfigurationError


@dataclass(frozen=True)
class _GasArgument(Configuration):
    NAME = "gas-argument"
    CATEGORY = "custom"

    def is_source(self, node, graph):
        return False

    def is_sink(self, node, graph):
        return False


class TestDiscovery:
    def test_builtins_are_discovered(self):
        fresh = ConfigurationRegistry()
        assert set(fresh.get_all()) == set(BUILTIN_CONFIGURATIONS)
        assert fresh.count() == len(BUILTIN_CONFIGURATIONS)
        assert "reentrancy" in fresh.names()
        assert fresh.names() == sorted(fresh.names())

    def test_abstract_and_unnamed_classes_are_skipped(self):
        fresh = ConfigurationRegistry()
        classes = fresh.get_all()
        assert Configuration not in classes
        assert FunctionalConfiguration not in classes
        assert all(c.NAME for c in classes)

    def test_categories(self):
        fresh = ConfigurationRegistry()
        assert {"reentrancy", "access-control", "error-handling"} <= set(fresh.categories())
        assert fresh.get_by_category("reentrancy") == [Reentrancy]

    def test_global_registry(self):
        assert registry.get_by_name("tainted-array-index") is TaintedArrayIndex


class TestCreate:
    def test_create_with_options(self):
        fresh = ConfigurationRegistry()
        configuration = fresh.create("tainted-array-index", respect_checks=False, max_call_depth=5)
        assert isinstance(configuration, TaintedArrayIndex)
        assert configuration.respect_checks is False
        assert configuration.max_call_depth == 5

    def test_unknown_name(self):
        fresh = ConfigurationRegistry()
        with pytest.raises(UnknownConfigurationError) as excinfo:
            fresh.create("no-such-check")
        assert "reentrancy" in excinfo.value.details["available"]


class TestRegister:
    def test_register_custom_configuration(self):
        fresh = ConfigurationRegistry()
        fresh.register(_GasArgument)
        assert fresh.get_by_name("gas-argument") is _GasArgument
        assert fresh.count() == len(BUILTIN_CONFIGURATIONS) + 1
        assert "custom" in fresh.categories()

    def test_register_rejects_unnamed(self):
        fresh = ConfigurationRegistry()
        with pytest.raises(ValueError):
            fresh.register(FunctionalConfiguration)
