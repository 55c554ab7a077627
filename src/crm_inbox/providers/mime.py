"""MIME decoding of raw message bytes into a ``MessageBody``.

Walks every part of an RFC 2822 message and keeps the first ``text/html``
and ``text/plain`` parts plus metadata of every attachment.
"""

from __future__ import annotations

from email import message_from_bytes
from email.message import Message

from crm_inbox.domain.models import Attachment, MessageBody


def _decode_part(part: Message) -> str:
    raw_payload = part.get_payload(decode=True)
    if not isinstance(raw_payload, bytes) or not raw_payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return raw_payload.decode(charset, errors="replace")
    except LookupError:
        return raw_payload.decode("utf-8", errors="replace")


def parse_raw_message(raw_bytes: bytes) -> MessageBody:
    """Parse raw email bytes into HTML/text bodies and attachment metadata.

    Args:
        raw_bytes: The raw email bytes (already base64url-decoded).

    Returns:
        A ``MessageBody``; missing parts are ``None``.
    """
    msg: Message = message_from_bytes(raw_bytes)

    html_body: str | None = None
    text_body: str | None = None
    attachments: list[Attachment] = []

    for part in msg.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if filename or part.get_content_disposition() == "attachment":
            payload = part.get_payload(decode=True)
            attachments.append(
                Attachment(
                    filename=filename or "",
                    mime_type=part.get_content_type(),
                    size=len(payload) if isinstance(payload, bytes) else 0,
                )
            )
            continue

        content_type = part.get_content_type()
        if content_type == "text/html" and html_body is None:
            html_body = _decode_part(part) or None
        elif content_type == "text/plain" and text_body is None:
            text_body = _decode_part(part) or None

    return MessageBody(html_body=html_body, text_body=text_body, attachments=attachments)
