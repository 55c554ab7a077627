"""CRM state inheritance for newly created conversations.

A new conversation with a person the team already talks to inherits the
assignee and pipeline stage of that person's most recently active
conversation.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict

from crm_inbox.domain.types import Channel
from crm_inbox.store.conversations import ConversationStore

logger = structlog.get_logger()


class InheritedState(BaseModel):
    """CRM fields copied onto a new conversation; all ``None`` on a miss."""

    model_config = ConfigDict(frozen=True)

    assigned_to: str | None = None
    custom_stage_id: str | None = None
    stage_assigned_at: datetime | None = None


def resolve_inherited_state(
    store: ConversationStore,
    workspace_id: str,
    channel: Channel,
    address: str | None,
    now: datetime,
    attendee_id: str | None = None,
) -> InheritedState:
    """Look up the CRM state a new conversation should start with.

    Args:
        store: The conversation store.
        workspace_id: Workspace of the new conversation.
        channel: ``email`` or ``linkedin``.
        address: Email address (email) or profile URL (LinkedIn).
        now: Timestamp used for ``stage_assigned_at`` when a stage is inherited.
        attendee_id: LinkedIn attendee id, used when no profile URL is known.

    Returns:
        The inherited state.  A store failure is logged and treated as a miss.
    """
    try:
        if channel == Channel.EMAIL:
            if not address or not address.strip():
                return InheritedState()
            prior = store.find_latest_by_email(workspace_id, address)
        else:
            prior = store.find_latest_by_linkedin(workspace_id, address, attendee_id)
    except sqlite3.Error:
        logger.warning(
            "state_inheritance_lookup_failed",
            workspace_id=workspace_id,
            channel=channel.value,
            exc_info=True,
        )
        return InheritedState()

    if prior is None:
        return InheritedState()

    return InheritedState(
        assigned_to=prior.assigned_to,
        custom_stage_id=prior.custom_stage_id,
        stage_assigned_at=now if prior.custom_stage_id else None,
    )
