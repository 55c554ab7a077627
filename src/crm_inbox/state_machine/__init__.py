"""Sync run state machine with transition validation."""

from crm_inbox.state_machine.machine import SyncStateMachine
from crm_inbox.state_machine.transitions import TERMINAL_STATES, TRANSITIONS, SyncEvent

__all__ = [
    "TERMINAL_STATES",
    "TRANSITIONS",
    "SyncEvent",
    "SyncStateMachine",
]
