from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class PublishedSlot(Generic[T]):
    """Single-writer slot holding an immutable value.

    Readers always see a complete value. Listeners are called after each swap
    with the new value, outside the lock.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._lock = threading.Lock()
        self._listeners: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def swap(self, value: T) -> T:
        with self._lock:
            self._value = value
            listeners = list(self._listeners)
        for listener in listeners:
            listener(value)
        return value

    def update(self, fn: Callable[[T], T]) -> T:
        with self._lock:
            value = fn(self._value)
            self._value = value
            listeners = list(self._listeners)
        for listener in listeners:
            listener(value)
        return value

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe


def shorten_id(value: str | None, length: int = 8) -> str:
    if not value:
        return "anonymous"
    if len(value) <= length:
        return value
    return f"{value[:length]}..."
