"""
HUD State Store
===============

Single owner of the current HudState. Actions go through dispatch() and
are applied strictly in arrival order; the view layer pulls snapshots
through ``state`` or gets notified through subscribe().
"""

from typing import Callable, List, Optional

import structlog

from claude_hud.core.models import HudState, create_initial_state
from claude_hud.stream.reducer import HudAction, reduce_hud_state

logger = structlog.get_logger()


Listener = Callable[[HudState], None]


class HudStore:
    """Holds the state, applies actions, notifies listeners."""

    def __init__(self, initial: Optional[HudState] = None):
        self._state = initial if initial is not None else create_initial_state()
        self._listeners: List[Listener] = []
        self.version = 0

    @property
    def state(self) -> HudState:
        """Latest snapshot. Never mutated after being handed out."""
        return self._state

    def dispatch(self, action: HudAction) -> HudState:
        next_state = reduce_hud_state(self._state, action)
        if next_state is not self._state:
            self._state = next_state
            self.version += 1
            self._notify()
        return self._state

    def reset(self, state: HudState) -> None:
        """Replace the whole state, used on session handover."""
        self._state = state
        self.version += 1
        logger.debug("Store reset", session_id=state.session_info.session_id)
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                # A broken view must not stop ingestion
                logger.error("Store listener failed", error=str(e))
