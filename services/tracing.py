"""Injectable observers for wizard trace events and timings."""
from __future__ import annotations

import logging
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, List


_LOGGER = logging.getLogger(__name__)


class WizardObserver:
    """Receives trace events; the base class ignores them."""

    def on_event(self, event: Dict[str, Any]) -> None:
        return None


class LoggingObserver(WizardObserver):
    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        self._logger = logger or _LOGGER
        self._level = level

    def on_event(self, event: Dict[str, Any]) -> None:
        self._logger.log(self._level, "[TRACE] %s", event)


class TraceBuffer(WizardObserver):
    """Keep the most recent events for a debug panel."""

    def __init__(self, maxlen: int = 500):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=maxlen)

    def on_event(self, event: Dict[str, Any]) -> None:
        self._events.append(dict(event))

    @property
    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()


class CompositeObserver(WizardObserver):
    def __init__(self, *observers: WizardObserver):
        self._observers = [obs for obs in observers if obs is not None]

    def on_event(self, event: Dict[str, Any]) -> None:
        for observer in self._observers:
            try:
                observer.on_event(event)
            except Exception:  # pragma: no cover - observers must not break the wizard
                _LOGGER.exception("Observer %r failed", observer)


@contextmanager
def timed(observer: WizardObserver, where: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Emit ``where`` with ``elapsed_ms`` once the block finishes.

    The yielded dict can be filled with extra fields inside the block.
    """

    extra: Dict[str, Any] = dict(fields)
    start = time.perf_counter()
    try:
        yield extra
    finally:
        elapsed_ms = round((time.perf_counter() - start) * 1000.0, 3)
        observer.on_event({"where": where, "elapsed_ms": elapsed_ms, **extra})
