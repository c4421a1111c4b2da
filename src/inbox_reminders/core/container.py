"""Service container wiring the daemon's collaborators."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")

SETTINGS = "settings"
RULE_STORE = "rule_store"
RULE_MATCHER = "rule_matcher"
FIELD_EXTRACTOR = "field_extractor"
REMINDER_SINK = "reminder_sink"
MAIL_SOURCES = "mail_sources"
DAEMON = "daemon"


class ServiceContainer:
    """Lazy singleton registry keyed by service name."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under ``key``, dropping any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already-built object, e.g. a test double."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    def try_resolve(self, key: str) -> Any | None:
        """Resolve a dependency if available; return None otherwise."""
        try:
            return self.resolve(key)
        except KeyError:
            return None


__all__ = [
    "DAEMON",
    "FIELD_EXTRACTOR",
    "MAIL_SOURCES",
    "REMINDER_SINK",
    "RULE_MATCHER",
    "RULE_STORE",
    "SETTINGS",
    "ServiceContainer",
]
