"""Configuration registry: discovers and instantiates flow configurations."""

from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Any, Type

from solflow.core.configuration import Configuration, FunctionalConfiguration
from solflow.core.errors import UnknownConfigurationError

logger = logging.getLogger(__name__)


class ConfigurationRegistry:
    """Registry for all named flow configurations.

    Discovers configuration classes from the ``configurations`` package and
    accepts extra ones registered by plugins.
    """

    def __init__(self) -> None:
        self._configurations: dict[str, Type[Configuration]] = {}
        self._loaded = False

    def discover(self) -> None:
        """Auto-discover all configuration classes from this package."""
        if self._loaded:
            return

        import solflow.analyzer.configurations as configurations_pkg

        for _finder, module_name, _is_pkg in pkgutil.walk_packages(
            configurations_pkg.__path__,
            prefix=configurations_pkg.__name__ + ".",
        ):
            try:
                module = importlib.import_module(module_name)
            except Exception as e:
                logger.warning("Failed to load configuration module %s: %s", module_name, e)
                continue
            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if _is_named_configuration(attr):
                    self._configurations.setdefault(attr.NAME, attr)

        self._loaded = True

    def register(self, configuration_cls: Type[Configuration]) -> None:
        """Add a configuration class (later registrations replace earlier ones)."""
        if not _is_named_configuration(configuration_cls):
            raise ValueError(f"{configuration_cls!r} is not a named Configuration subclass")
        self.discover()
        if configuration_cls.NAME in self._configurations:
            logger.info("Replacing configuration '%s'", configuration_cls.NAME)
        self._configurations[configuration_cls.NAME] = configuration_cls

    def get_all(self) -> list[Type[Configuration]]:
        """Return all registered configuration classes."""
        self.discover()
        return list(self._configurations.values())

    def get_by_name(self, name: str) -> Type[Configuration] | None:
        self.discover()
        return self._configurations.get(name)

    def create(self, name: str, **options: Any) -> Configuration:
        """Instantiate the configuration registered as ``name``."""
        configuration_cls = self.get_by_name(name)
        if configuration_cls is None:
            raise UnknownConfigurationError(
                f"Unknown configuration '{name}'", {"available": self.names()},
            )
        return configuration_cls(**options)

    def get_by_category(self, category: str) -> list[Type[Configuration]]:
        self.discover()
        return [c for c in self._configurations.values() if c.CATEGORY == category]

    def names(self) -> list[str]:
        self.discover()
        return sorted(self._configurations)

    def count(self) -> int:
        self.discover()
        return len(self._configurations)

    def categories(self) -> list[str]:
        """Return all unique configuration categories."""
        self.discover()
        return sorted(set(c.CATEGORY for c in self._configurations.values() if c.CATEGORY))


def _is_named_configuration(attr: Any) -> bool:
    return (
        isinstance(attr, type)
        and issubclass(attr, Configuration)
        and attr is not Configuration
        and attr is not FunctionalConfiguration
        and bool(attr.NAME)
        and not getattr(attr, "__abstractmethods__", None)
    )


# Global registry singleton
registry = ConfigurationRegistry()
