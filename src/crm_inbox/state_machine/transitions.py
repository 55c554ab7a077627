"""Transition map defining all valid (state, event) -> state mappings."""

from enum import StrEnum

from crm_inbox.domain.types import SyncState


class SyncEvent(StrEnum):
    """Events that can move a sync run between states."""

    START = "start"
    COMPLETE = "complete"
    FAIL = "fail"


# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[SyncState, str], SyncState] = {
    (SyncState.PENDING, SyncEvent.START): SyncState.IN_PROGRESS,
    (SyncState.PENDING, SyncEvent.FAIL): SyncState.ERROR,
    (SyncState.IN_PROGRESS, SyncEvent.COMPLETE): SyncState.COMPLETED,
    (SyncState.IN_PROGRESS, SyncEvent.FAIL): SyncState.ERROR,
}

TERMINAL_STATES: frozenset[SyncState] = frozenset({SyncState.COMPLETED, SyncState.ERROR})
