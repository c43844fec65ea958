"""
State container: holds the current AppState and applies actions through the
pure reducer. Constructed once by the application and passed by reference.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from lstracker.actions import Action
from lstracker.models import AppState, initial_state
from lstracker.reducer import reduce

logger = logging.getLogger(__name__)

Listener = Callable[[AppState, AppState, Action], None]


class Store:
    def __init__(self, state: Optional[AppState] = None, *, reducer=reduce):
        self._state = state if state is not None else initial_state()
        self._reducer = reducer
        self._listeners: list[Listener] = []
        # Streamlit script threads and the sync loop thread both dispatch;
        # the lock keeps dispatch a serialized mailbox.
        self._lock = threading.RLock()

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        with self._lock:
            previous = self._state
            current = self._reducer(previous, action)
            self._state = current
            if current is not previous:
                logger.debug("Applied %s", type(action).__name__)
                for listener in list(self._listeners):
                    try:
                        listener(previous, current, action)
                    except Exception:
                        # A failing observer must not undo an applied action.
                        logger.exception("Store listener %r failed", listener)
            return current

    def locked(self) -> threading.RLock:
        """Hold across read-validate-dispatch sequences that must not interleave."""
        return self._lock

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
