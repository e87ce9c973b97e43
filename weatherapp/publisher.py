"""
StatePublisher — holds the latest immutable state snapshot and notifies listeners.

Reconcilers replace their snapshot wholesale with async_set_updated_data();
the presentation layer registers a callback and renders whatever it receives.
"""
from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class StatePublisher(Generic[T]):
    """Copy-on-write state holder with synchronous listener fan-out."""

    def __init__(self, initial: T, name: str) -> None:
        self.name = name
        self.data: T = initial
        self._listeners: list[Callable[[T], None]] = []

    def async_add_listener(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        self._listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove_listener

    def async_set_updated_data(self, data: T) -> None:
        """Publish a new snapshot to every listener."""
        self.data = data
        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in %s state listener", self.name)
