"""The live editing session: owner of the current TimelineState."""

from typing import Callable

from syncforge.models import TimelineState

StateListener = Callable[[TimelineState], None]


class Session:
    """Holds the one live TimelineState of an editing session.

    Components receive the session by injection and never keep their own copy
    of the state. The state is only ever swapped wholesale through
    :meth:`replace`, which also notifies listeners (renderers, mostly).
    """

    def __init__(self, state: TimelineState):
        self._state = state
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> TimelineState:
        return self._state

    def replace(self, state: TimelineState) -> TimelineState:
        """Swap in a new state and notify listeners. Returns the new state."""
        if state is self._state:
            return state
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return state

    def update(self, **changes) -> TimelineState:
        """Replace the state with a copy carrying ``changes``."""
        return self.replace(self._state.with_changes(**changes))

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
