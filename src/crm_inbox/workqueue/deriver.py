"""Read-side work queue projection over stored messages.

Everything here is a pure function of a conversation's messages and the
current time; nothing is stored, so the flags are recomputed on every read.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from crm_inbox.domain.models import ConversationRecord, MessageRecord
from crm_inbox.domain.types import Channel, Folder, WorkQueueFilter, is_outbound_folder

DEFAULT_SLA_HOURS = 24
DEFAULT_IDLE_THRESHOLD_DAYS = 3


class WorkQueueState(BaseModel):
    """Operational flags of one conversation."""

    model_config = ConfigDict(frozen=True)

    last_inbound_at: datetime | None = None
    last_outbound_at: datetime | None = None
    pending_reply: bool = False
    last_activity_at: datetime | None = None
    idle_days: int = 0
    overdue: bool = False


class WorkQueueItem(WorkQueueState):
    """A conversation row of the work queue view."""

    conversation_id: str
    channel: Channel
    sender_name: str = ""
    sender_email: str | None = None
    sender_linkedin_url: str | None = None
    subject: str | None = None
    assigned_to: str | None = None
    custom_stage_id: str | None = None
    status: str = "new"
    last_message_at: datetime | None = None
    preview: str | None = None
    folder: str = Folder.INBOX
    conversation_count: int = 1


def derive_work_queue_state(
    messages: Iterable[MessageRecord],
    now: datetime,
    sla_hours: int = DEFAULT_SLA_HOURS,
) -> WorkQueueState:
    """Compute reply and activity flags for a conversation.

    Args:
        messages: The conversation's messages, in any order.
        now: The reference time.
        sla_hours: Hours an inbound message may wait before it is overdue.

    Returns:
        The derived ``WorkQueueState``.
    """
    last_inbound_at: datetime | None = None
    last_outbound_at: datetime | None = None
    for message in messages:
        if message.is_from_lead:
            if last_inbound_at is None or message.created_at > last_inbound_at:
                last_inbound_at = message.created_at
        elif last_outbound_at is None or message.created_at > last_outbound_at:
            last_outbound_at = message.created_at

    pending_reply = last_inbound_at is not None and (
        last_outbound_at is None or last_inbound_at > last_outbound_at
    )
    activity = [ts for ts in (last_inbound_at, last_outbound_at) if ts is not None]
    last_activity_at = max(activity) if activity else None
    idle_days = (now - last_activity_at).days if last_activity_at is not None else 0
    overdue = (
        pending_reply
        and last_inbound_at is not None
        and now - last_inbound_at > timedelta(hours=sla_hours)
    )

    return WorkQueueState(
        last_inbound_at=last_inbound_at,
        last_outbound_at=last_outbound_at,
        pending_reply=pending_reply,
        last_activity_at=last_activity_at,
        idle_days=max(idle_days, 0),
        overdue=overdue,
    )


def derive_conversation_folder(messages: Sequence[MessageRecord]) -> str:
    """Project a conversation onto a single folder for folder views.

    Priority: trash, archive, drafts, inbox (any inbound message that is in
    the inbox or an unrecognized folder), sent (all outbound), then inbox.
    """
    folders = {message.provider_folder or Folder.INBOX for message in messages}
    for folder in (Folder.TRASH, Folder.ARCHIVE, Folder.DRAFTS):
        if folder in folders:
            return folder

    known = {f.value for f in Folder}
    for message in messages:
        folder = message.provider_folder or Folder.INBOX
        if message.is_from_lead and (folder == Folder.INBOX or folder not in known):
            return Folder.INBOX

    if messages and all(is_outbound_folder(m.provider_folder or "") for m in messages):
        return Folder.SENT
    return Folder.INBOX


def build_work_queue_item(
    conversation: ConversationRecord,
    messages: Sequence[MessageRecord],
    now: datetime,
    sla_hours: int = DEFAULT_SLA_HOURS,
) -> WorkQueueItem:
    """Combine a conversation with the flags derived from its messages."""
    state = derive_work_queue_state(messages, now, sla_hours)
    latest = max(messages, key=lambda m: m.created_at) if messages else None
    return WorkQueueItem(
        **state.model_dump(),
        conversation_id=conversation.id,
        channel=conversation.channel,
        sender_name=conversation.sender_name,
        sender_email=conversation.sender_email,
        sender_linkedin_url=conversation.sender_linkedin_url,
        subject=conversation.subject,
        assigned_to=conversation.assigned_to,
        custom_stage_id=conversation.custom_stage_id,
        status=conversation.status,
        last_message_at=conversation.last_message_at,
        preview=latest.content if latest is not None else conversation.preview,
        folder=derive_conversation_folder(messages),
    )


def _matches(
    item: WorkQueueItem, queue_filter: WorkQueueFilter, idle_threshold_days: int
) -> bool:
    if queue_filter == WorkQueueFilter.PENDING:
        return item.pending_reply
    if queue_filter == WorkQueueFilter.OVERDUE:
        return item.overdue
    if queue_filter == WorkQueueFilter.IDLE:
        return not item.pending_reply and item.idle_days >= idle_threshold_days
    return True


def _sort_key(item: WorkQueueItem) -> tuple[int, float]:
    inbound = item.last_inbound_at.timestamp() if item.last_inbound_at is not None else 0.0
    return (0 if item.overdue else 1, inbound)


def _group_email_items(items: Sequence[WorkQueueItem]) -> list[WorkQueueItem]:
    """Collapse email conversations with the same sender into the latest one."""
    groups: dict[str, list[WorkQueueItem]] = {}
    ungrouped: list[WorkQueueItem] = []
    for item in items:
        key = (item.sender_email or "").strip().lower()
        if item.channel != Channel.EMAIL or not key:
            ungrouped.append(item)
            continue
        groups.setdefault(key, []).append(item)

    grouped: list[WorkQueueItem] = []
    for sender_email, members in groups.items():
        latest = max(
            members,
            key=lambda m: m.last_message_at.timestamp() if m.last_message_at else 0.0,
        )
        grouped.append(
            latest.model_copy(
                update={"sender_email": sender_email, "conversation_count": len(members)}
            )
        )
    return grouped + ungrouped


def build_work_queue(
    items: Iterable[WorkQueueItem],
    queue_filter: WorkQueueFilter = WorkQueueFilter.ALL,
    idle_threshold_days: int = DEFAULT_IDLE_THRESHOLD_DAYS,
    assignee: str | None = None,
) -> list[WorkQueueItem]:
    """Filter, group and order work queue items.

    Args:
        items: One item per conversation.
        queue_filter: ``all``, ``pending``, ``overdue`` or ``idle``.
        idle_threshold_days: Minimum ``idle_days`` for the ``idle`` filter.
        assignee: When set, only conversations assigned to this user.

    Returns:
        Email conversations grouped by sender, LinkedIn conversations as-is,
        overdue first and then oldest unanswered first.
    """
    selected = [
        item
        for item in items
        if _matches(item, queue_filter, idle_threshold_days)
        and (assignee is None or item.assigned_to == assignee)
    ]
    return sorted(_group_email_items(selected), key=_sort_key)
