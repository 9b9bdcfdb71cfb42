# backend/hm_core/common/events.py
"""
In-process domain event bus.

Payloads stay ID-based (strings) so publishers never import subscriber apps.
Handlers run synchronously in the publisher's transaction; a failing handler
propagates to the publisher.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List

import structlog

Handler = Callable[[Dict[str, Any]], None]

log = structlog.get_logger(__name__)

_registry: Dict[str, List[Handler]] = defaultdict(list)


def subscribe(event_name: str):
    """
    Decorator to register an event handler.
    Usage:
        @subscribe("clinical_docs.discharge_request_filed")
        def handler(payload): ...
    """
    def _decorator(fn: Handler) -> Handler:
        if fn not in _registry[event_name]:
            _registry[event_name].append(fn)
        return fn
    return _decorator


def subscribers(event_name: str) -> List[Handler]:
    return list(_registry.get(event_name, []))


def publish(event_name: str, payload: Dict[str, Any]) -> None:
    handlers = subscribers(event_name)
    log.debug("event.published", event_name=event_name, handlers=len(handlers))
    for handler in handlers:
        handler(payload)
