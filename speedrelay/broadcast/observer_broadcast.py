import inspect
from typing import Callable

from speedrelay.broadcast.events import BroadcastEvent, EventCallback
from speedrelay.logging import logger


class ObserverBroadcast:
    """Fans broadcast events out to any number of passive observers

    A failing observer is logged and skipped; it never affects the other
    observers or the coordinator.
    """

    def __init__(self):
        self._callbacks: list[EventCallback] = []

    @property
    def observer_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register an observer and return a function that unregisters it"""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: EventCallback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    async def publish(self, event: BroadcastEvent) -> None:
        """Deliver an event to every observer registered at call time"""
        for callback in self._callbacks.copy():
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in observer callback for {event.type}: {e}")
