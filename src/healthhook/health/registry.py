"""
Data-source plugin registry.

Discovers sources at runtime via ``importlib.metadata`` entry points
(group: ``healthhook.data_sources``).  Third-party packages can register
sources in their own ``pyproject.toml``:

    [project.entry-points."healthhook.data_sources"]
    my_bridge = "my_package.source:MyBridgeSource"
"""

from importlib.metadata import entry_points
from typing import Any

from loguru import logger

from .source import HealthDataSource

ENTRY_POINT_GROUP = "healthhook.data_sources"

_REQUIRED_METHODS = ("is_available", "list_granted_capabilities", "fetch_records")


def _looks_like_source(cls: Any) -> bool:
    return isinstance(cls, type) and all(callable(getattr(cls, m, None)) for m in _REQUIRED_METHODS)


class DataSourceRegistry:
    """Discover and manage health data source plugins."""

    def __init__(self):
        self._sources: dict[str, type] = {}

    def discover(self) -> dict[str, type]:
        """Scan entry points and return {name: source_class}."""
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                cls = ep.load()
            except Exception as e:
                logger.warning(f"Failed to load data source '{ep.name}': {e}")
                continue
            if _looks_like_source(cls):
                self._sources[ep.name] = cls
                logger.debug(f"Discovered data source: {ep.name}")
            else:
                logger.warning(f"Entry point '{ep.name}' does not implement HealthDataSource; skipped")

        return dict(self._sources)

    def register(self, name: str, source_class: type) -> None:
        """Manually register a source (useful for testing)."""
        self._sources[name] = source_class

    def get(self, name: str) -> type | None:
        return self._sources.get(name)

    def list_names(self) -> list[str]:
        return list(self._sources.keys())

    def create(self, name: str, **config: Any) -> HealthDataSource:
        """Instantiate a source by name with the given config."""
        cls = self._sources.get(name)
        if cls is None:
            raise KeyError(f"No data source registered as '{name}'. Available: {self.list_names()}")
        return cls(**config)
