"""Work queue derivation over stored conversations."""

from crm_inbox.workqueue.deriver import (
    WorkQueueItem,
    WorkQueueState,
    build_work_queue,
    build_work_queue_item,
    derive_conversation_folder,
    derive_work_queue_state,
)

__all__ = [
    "WorkQueueItem",
    "WorkQueueState",
    "build_work_queue",
    "build_work_queue_item",
    "derive_conversation_folder",
    "derive_work_queue_state",
]
