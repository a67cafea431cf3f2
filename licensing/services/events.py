"""
In-process event bus.

Subscribers register with a decorator and are called synchronously by
``emit``.  Emission happens after the emitting transaction has committed, so
a subscriber failure is logged and swallowed: the state change it reports is
already durable.

Usage:
    from licensing.services.events import subscribe, APPLICATION_ADVANCED

    @subscribe(APPLICATION_ADVANCED)
    def on_advanced(payload):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

APPLICATION_ADVANCED = "application.advanced"

_subscribers: dict[str, list[Callable[[dict], None]]] = {}


def subscribe(event_type: str):
    """Decorator to register a handler for ``event_type``."""
    def decorator(fn: Callable[[dict], None]) -> Callable[[dict], None]:
        handlers = _subscribers.setdefault(event_type, [])
        if fn not in handlers:
            handlers.append(fn)
        return fn
    return decorator


def unsubscribe(event_type: str, fn: Callable[[dict], None]) -> None:
    handlers = _subscribers.get(event_type, [])
    if fn in handlers:
        handlers.remove(fn)


def get_subscribers(event_type: str) -> list[Callable[[dict], None]]:
    """Return a copy of the handlers registered for ``event_type``."""
    return list(_subscribers.get(event_type, []))


def emit(event_type: str, payload: dict) -> int:
    """
    Deliver ``payload`` to every subscriber of ``event_type``.

    Returns:
        Number of handlers that completed without raising.
    """
    delivered = 0
    for handler in get_subscribers(event_type):
        try:
            handler(payload)
            delivered += 1
        except Exception:
            logger.exception(
                "Subscriber %s failed for %s",
                getattr(handler, "__name__", repr(handler)), event_type,
                extra={"event_type": event_type},
            )
    return delivered
