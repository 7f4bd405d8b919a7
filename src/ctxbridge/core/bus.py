"""Typed in-process event bus.

Events are declared once with a pydantic model describing their properties.
A :class:`Bus` instance is owned by the application context and handed to
every component that publishes or listens; there is no process-global bus.

Delivery is synchronous: :meth:`Bus.publish` calls every subscriber before
returning, in subscription order, so listeners observe events in exactly the
order they were published.

Example:
    class ServerStatusProps(BaseModel):
        status: str

    ServerStatus = BusEvent.define("server.status", ServerStatusProps)

    bus = Bus()
    unsubscribe = bus.subscribe(ServerStatus, lambda payload: print(payload.properties))
    bus.publish(ServerStatus, ServerStatusProps(status="connected"))
    unsubscribe()
"""

import traceback
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

# Lazy logger to avoid circular imports
_log: Optional[Any] = None


def _get_log():
    global _log
    if _log is None:
        from ..util.log import Log
        _log = Log.create({"service": "bus"})
    return _log


class BusEvent(Generic[T]):
    """Event definition: a type string plus the model of its properties."""

    def __init__(self, event_type: str, properties_type: type[T]):
        self.type = event_type
        self.properties_type = properties_type

    @staticmethod
    def define(event_type: str, properties_type: type[T]) -> "BusEvent[T]":
        """Define an event type and register it for introspection."""
        event = BusEvent(event_type, properties_type)
        _registry[event_type] = event
        return event


_registry: Dict[str, BusEvent] = {}


def registered_events() -> Dict[str, BusEvent]:
    return dict(_registry)


class EventPayload(BaseModel):
    """Payload delivered to subscribers."""
    type: str
    properties: Dict[str, Any]


SubscriptionCallback = Callable[[EventPayload], None]


class Bus:
    """Synchronous publish/subscribe hub."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[SubscriptionCallback]] = {}

    def publish(self, event: BusEvent[T], properties: T | Dict[str, Any]) -> None:
        if isinstance(properties, dict):
            properties = event.properties_type(**properties)
        elif not isinstance(properties, event.properties_type):
            raise TypeError(f"Properties must be instance of {event.properties_type.__name__}")

        payload = EventPayload(type=event.type, properties=properties.model_dump(mode="json"))

        # Snapshot so a callback that unsubscribes does not skip its neighbour.
        callbacks = [*self._subscriptions.get(event.type, []), *self._subscriptions.get("*", [])]
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                _get_log().error("subscription callback failed", {
                    "error": str(e),
                    "type": event.type,
                    "traceback": traceback.format_exc(),
                })

    def subscribe(self, event: BusEvent[T], callback: SubscriptionCallback) -> Callable[[], None]:
        return self._raw_subscribe(event.type, callback)

    def subscribe_all(self, callback: SubscriptionCallback) -> Callable[[], None]:
        return self._raw_subscribe("*", callback)

    def _raw_subscribe(self, event_type: str, callback: SubscriptionCallback) -> Callable[[], None]:
        self._subscriptions.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            subs = self._subscriptions.get(event_type, [])
            if callback in subs:
                subs.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        self._subscriptions.clear()
