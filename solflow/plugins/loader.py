"""Loading of third-party flow configurations from plugin directories.

Each subdirectory of the plugins root holding a ``plugin.yaml`` (or
``plugin.yml``) is a plugin. Besides the manifest it may carry an
``__init__.py`` or ``main.py`` imported on load, and a ``configurations/``
package whose modules define Configuration subclasses.

Usage:
    loader = PluginLoader(plugins_dir="/etc/solflow/plugins")
    loader.load_all()
    loader.register_into(registry)
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Iterator, Type

import yaml
from pydantic import BaseModel, ConfigDict, Field

from solflow.analyzer.configurations.registry import ConfigurationRegistry
from solflow.core.config import get_settings
from solflow.core.configuration import Configuration

logger = logging.getLogger(__name__)

MANIFEST_NAMES = ("plugin.yaml", "plugin.yml")
ENTRY_MODULES = ("__init__.py", "main.py")


# ── Manifest ─────────────────────────────────────────────────────────────────


class PluginManifest(BaseModel):
    """Validated contents of a plugin manifest."""

    model_config = ConfigDict(extra="ignore")

    name: str
    version: str = "0.0.0"
    description: str = ""
    author: str = ""
    provides_configurations: bool = True
    options: dict[str, Any] = Field(default_factory=dict)
    path: Path | None = None

    @property
    def module_prefix(self) -> str:
        return "solflow_plugin_" + self.name.replace("-", "_").replace(" ", "_")


def _parse_manifest(path: Path) -> PluginManifest:
    """Read a manifest file; raises ValueError when it is not a mapping."""
    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: manifest must be a mapping, got {type(raw).__name__}")

    raw.setdefault("name", path.parent.name)
    for key in ("name", "version"):
        if key in raw:
            raw[key] = str(raw[key])
    raw["options"] = raw.get("options") or {}
    raw["path"] = path.parent
    return PluginManifest.model_validate(raw)


def _manifest_file(directory: Path) -> Path | None:
    for candidate in MANIFEST_NAMES:
        if (directory / candidate).is_file():
            return directory / candidate
    return None


# ── Loaded state ─────────────────────────────────────────────────────────────


@dataclass
class LoadedPlugin:
    manifest: PluginManifest
    path: Path
    checksum: str
    configurations: list[Type[Configuration]] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)
    load_errors: list[str] = field(default_factory=list)
    is_enabled: bool = True

    def add_configurations(self, module: ModuleType) -> None:
        for cls in _configuration_classes(module):
            if cls not in self.configurations:
                self.configurations.append(cls)


class PluginLoader:
    """Discovers plugins under a directory and imports their configurations."""

    def __init__(self, plugins_dir: str | Path | None = None) -> None:
        self._root = Path(plugins_dir or get_settings().plugins_dir)
        self._plugins: dict[str, LoadedPlugin] = {}

    @property
    def plugins(self) -> dict[str, LoadedPlugin]:
        return dict(self._plugins)

    def discover(self) -> list[PluginManifest]:
        """Parse every manifest under the plugins root; unreadable ones are skipped."""
        if not self._root.is_dir():
            logger.info("No plugins directory at %s", self._root)
            return []

        found: list[PluginManifest] = []
        for directory in sorted(p for p in self._root.iterdir() if p.is_dir()):
            manifest_path = _manifest_file(directory)
            if manifest_path is None:
                continue
            try:
                manifest = _parse_manifest(manifest_path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning("Skipping plugin at %s: %s", directory, e)
                continue
            logger.debug("Found plugin %s %s", manifest.name, manifest.version)
            found.append(manifest)
        return found

    def load_all(self) -> int:
        """Load every discovered plugin; returns how many loaded."""
        count = 0
        for manifest in self.discover():
            try:
                self.load_plugin(manifest)
            except Exception as e:
                logger.error("Plugin '%s' failed to load: %s", manifest.name, e)
            else:
                count += 1
        return count

    def load_plugin(self, manifest: PluginManifest) -> LoadedPlugin:
        directory = manifest.path or self._root / manifest.name
        if not directory.is_dir():
            raise FileNotFoundError(f"Plugin directory not found: {directory}")

        plugin = LoadedPlugin(manifest=manifest, path=directory, checksum=_checksum(directory))

        entry = next((directory / name for name in ENTRY_MODULES if (directory / name).is_file()), None)
        if entry is not None:
            self._import_into(plugin, manifest.module_prefix, entry, label="entry module")

        configurations_dir = directory / "configurations"
        if manifest.provides_configurations and configurations_dir.is_dir():
            for source in _configuration_sources(configurations_dir):
                self._import_into(plugin, f"{manifest.module_prefix}_{source.stem}", source, label=source.name)

        self._plugins[manifest.name] = plugin
        logger.info(
            "Loaded plugin '%s' %s with %d configuration(s)",
            manifest.name, manifest.version, len(plugin.configurations),
        )
        return plugin

    def _import_into(self, plugin: LoadedPlugin, module_name: str, source: Path, label: str) -> None:
        """Import one file of a plugin, recording failures on the plugin."""
        try:
            module = _import_file(module_name, source)
        except Exception as e:
            plugin.load_errors.append(f"{label}: {e}")
            logger.warning("Plugin '%s': cannot import %s: %s", plugin.manifest.name, source, e)
            return
        plugin.modules.append(module_name)
        plugin.add_configurations(module)

    def get_configurations(self) -> list[Type[Configuration]]:
        """Configuration classes of every enabled plugin."""
        return [cls for plugin in self._plugins.values() if plugin.is_enabled for cls in plugin.configurations]

    def register_into(self, registry: ConfigurationRegistry) -> int:
        """Register named plugin configurations; returns the number registered."""
        registered = 0
        for cls in self.get_configurations():
            if not cls.NAME:
                logger.warning("Plugin configuration %s has no NAME, not registered", cls.__qualname__)
                continue
            registry.register(cls)
            registered += 1
        return registered

    def unload_plugin(self, name: str) -> bool:
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False
        for module_name in plugin.modules:
            sys.modules.pop(module_name, None)
        logger.info("Unloaded plugin '%s'", name)
        return True

    def enable_plugin(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable_plugin(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        plugin = self._plugins.get(name)
        if plugin is None:
            return False
        plugin.is_enabled = enabled
        return True


# ── Import helpers ───────────────────────────────────────────────────────────


def _import_file(module_name: str, source: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(module_name, source)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot build an import spec for {source}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def _configuration_sources(directory: Path) -> Iterator[Path]:
    return (p for p in sorted(directory.glob("*.py")) if not p.name.startswith("_"))


def _configuration_classes(module: ModuleType) -> list[Type[Configuration]]:
    """Configuration subclasses defined (not merely imported) in ``module``."""
    return [
        value for value in vars(module).values()
        if isinstance(value, type)
        and issubclass(value, Configuration)
        and value is not Configuration
        and value.__module__ == module.__name__
    ]


def _checksum(directory: Path) -> str:
    """SHA-256 over the plugin's Python sources in path order."""
    digest = hashlib.sha256()
    for source in sorted(directory.rglob("*.py")):
        digest.update(source.read_bytes())
    return digest.hexdigest()
