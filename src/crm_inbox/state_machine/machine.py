"""SyncStateMachine class with trigger, history, and valid_events."""

from __future__ import annotations

from crm_inbox.domain.errors import InvalidTransitionError
from crm_inbox.domain.types import SyncState
from crm_inbox.state_machine.transitions import TERMINAL_STATES, TRANSITIONS


class SyncStateMachine:
    """Finite state machine governing one account sync run.

    Usage::

        sm = SyncStateMachine()
        sm.trigger("start")      # -> IN_PROGRESS
        sm.trigger("complete")   # -> COMPLETED (terminal)
    """

    def __init__(self, initial_state: SyncState = SyncState.PENDING) -> None:
        self._state: SyncState = initial_state
        self._history: list[tuple[SyncState, str, SyncState]] = []

    @property
    def state(self) -> SyncState:
        """Return the current sync state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return True if the run has completed or failed."""
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[SyncState, str, SyncState]]:
        """Return a copy of the ``(from_state, event, to_state)`` history."""
        return list(self._history)

    def trigger(self, event: str) -> SyncState:
        """Apply an event to the current state and transition.

        Args:
            event: The event string (e.g. ``"start"``).

        Returns:
            The new state after the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current state, or if the machine is in a terminal state.
        """
        if self.is_terminal:
            raise InvalidTransitionError(self._state, event)

        key = (self._state, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self._state, event)

        old_state = self._state
        new_state = TRANSITIONS[key]
        self._history.append((old_state, event, new_state))
        self._state = new_state
        return new_state

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current state."""
        if self.is_terminal:
            return []
        return sorted(event for state, event in TRANSITIONS if state == self._state)
