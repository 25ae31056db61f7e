"""Listener registration shared by the entry cache and the auth session."""

from typing import Any, Callable, Dict

Listener = Callable[[str, Any], Any]


class ListenerRegistry:
    """Ordered set of listener callables.

    Registration is keyed by the callable itself, so adding the same listener
    twice has no further effect and removing an unknown listener is a no-op.
    Listeners are notified synchronously in registration order.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Listener, None] = {}

    def add(self, listener: Listener) -> Listener:
        """Register a listener.

        Args:
            listener: Callable invoked as ``listener(topic, payload)``

        Returns:
            The listener, so it can be used as a handle for ``remove``
        """
        if not callable(listener):
            raise TypeError(f"Listener must be callable, got {type(listener).__name__}")
        self._listeners.setdefault(listener, None)
        return listener

    def remove(self, listener: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        self._listeners.pop(listener, None)

    def notify(self, topic: str, payload: Any = None) -> None:
        """Call every registered listener with ``(topic, payload)``.

        Exceptions raised by a listener propagate to the caller of the
        mutating operation.
        """
        # Snapshot so listeners may unsubscribe themselves while notified
        for listener in list(self._listeners):
            listener(topic, payload)

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, listener: object) -> bool:
        return listener in self._listeners
