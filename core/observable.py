"""
Value holder with a subscribe/notify contract.

Pipelines publish labels, overlays, errors and state through these so
renderers never reach into pipeline internals.
"""
from __future__ import annotations
import logging
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], None]


class Observable(Generic[T]):
    """Holds the latest value and notifies listeners on every publish."""

    def __init__(self, initial: Optional[T] = None, name: str = ""):
        self._value = initial
        self._name = name
        self._listeners: List[Listener] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set(self, value: T) -> None:
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                # A broken renderer must not take the pipeline down
                logger.exception(f"[observable] listener failed name={self._name}")
