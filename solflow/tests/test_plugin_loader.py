"""Tests for the plugin loader system.

Covers:
    - PluginManifest parsing
    - PluginLoader discovery, load/unload, enable/disable
    - Configuration discovery and registration
"""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

from solflow.analyzer.configurations.registry import ConfigurationRegistry
from solflow.plugins.loader import PluginLoader, PluginManifest, _parse_manifest
from solflow.tests import solc_ast as sol
from solflow.core.engine import AnalysisEngine


CONFIGURATION_SOURCE = textwrap.dedent("""\
    from dataclasses import dataclass

    from solflow.core.configuration import Configuration
    from solflow.core.dataflow import FlowNodeKind


    @dataclass(frozen=True)
    class ParameterToReturn(Configuration):
        NAME = "parameter-to-return"
        CATEGORY = "custom"

        def is_source(self, node, graph):
            return node.kind == FlowNodeKind.PARAMETER

        def is_sink(self, node, graph):
            return node.kind == FlowNodeKind.RETURN
""")


def _write_plugin(root: Path, directory: str = "sample", manifest: str | None = None) -> Path:
    plugin_dir = root / directory
    (plugin_dir / "configurations").mkdir(parents=True)
    (plugin_dir / "plugin.yaml").write_text(manifest if manifest is not None else textwrap.dedent("""\
        name: sample
        version: 1.2.0
        description: Parameter to return value
        author: Audit Team
        options:
          strict: true
    """))
    (plugin_dir / "configurations" / "returns.py").write_text(CONFIGURATION_SOURCE)
    return plugin_dir


@pytest.fixture
def loader(tmp_path: Path):
    plugins = PluginLoader(plugins_dir=tmp_path)
    yield plugins
    for name in list(plugins.plugins):
        plugins.unload_plugin(name)


class TestPluginManifest:
    def test_manifest_fields(self, tmp_path: Path):
        plugin_dir = _write_plugin(tmp_path)
        manifest = _parse_manifest(plugin_dir / "plugin.yaml")
        assert manifest.name == "sample"
        assert manifest.version == "1.2.0"
        assert manifest.author == "Audit Team"
        assert manifest.options == {"strict": True}
        assert manifest.provides_configurations is True
        assert manifest.path == plugin_dir

    def test_non_mapping_manifest_is_rejected(self, tmp_path: Path):
        path = tmp_path / "plugin.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            _parse_manifest(path)


class TestPluginLoader:
    def test_discover_empty_dir(self, loader):
        assert loader.discover() == []
        assert loader.get_configurations() == []

    def test_missing_directory(self, tmp_path: Path):
        assert PluginLoader(plugins_dir=tmp_path / "absent").discover() == []

    def test_bad_manifest_is_skipped(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        _write_plugin(tmp_path, "broken", manifest="name: [unterminated\n")
        assert [m.name for m in loader.discover()] == ["sample"]

    def test_load_all(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        assert loader.load_all() == 1
        plugin = loader.plugins["sample"]
        assert [c.NAME for c in plugin.configurations] == ["parameter-to-return"]
        assert plugin.load_errors == []
        assert len(plugin.checksum) == 64

    def test_broken_configuration_file_is_recorded(self, tmp_path: Path, loader):
        plugin_dir = _write_plugin(tmp_path)
        (plugin_dir / "configurations" / "broken.py").write_text("raise RuntimeError('nope')\n")
        loader.load_all()
        plugin = loader.plugins["sample"]
        assert len(plugin.configurations) == 1
        assert any("broken.py" in error for error in plugin.load_errors)

    def test_register_into_registry(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        loader.load_all()
        fresh = ConfigurationRegistry()
        assert loader.register_into(fresh) == 1
        configuration = fresh.create("parameter-to-return")
        assert configuration.name == "parameter-to-return"

    def test_plugin_configuration_runs(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        loader.load_all()
        (configuration_cls,) = loader.get_configurations()
        engine = AnalysisEngine.from_ast(sol.source_unit(sol.contract("A", sol.function(
            "echo", [sol.var("a")], body=[sol.ret(sol.ident("a"))], returns=[sol.var("")],
        ))))
        paths = engine.flow_paths(configuration_cls())
        assert len(paths) == 1

    def test_enable_disable(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        loader.load_all()
        assert loader.disable_plugin("sample")
        assert loader.get_configurations() == []
        assert loader.enable_plugin("sample")
        assert len(loader.get_configurations()) == 1
        assert not loader.disable_plugin("nonexistent")

    def test_unload(self, tmp_path: Path, loader):
        _write_plugin(tmp_path)
        loader.load_all()
        assert "solflow_plugin_sample_returns" in sys.modules
        assert loader.unload_plugin("sample")
        assert "solflow_plugin_sample_returns" not in sys.modules
        assert loader.plugins == {}
        assert not loader.unload_plugin("sample")

    def test_load_plugin_without_directory(self, tmp_path: Path, loader):
        with pytest.raises(FileNotFoundError):
            loader.load_plugin(PluginManifest(name="ghost", version="0.1.0", path=tmp_path / "ghost"))
