"""Domain entities shared by the store, the digest pipeline and delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass
class Attachment:
    filename: str
    mime_type: str = ""
    size: int = 0
    attachment_id: str = ""

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "attachment_id": self.attachment_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            filename=data.get("filename", ""),
            mime_type=data.get("mime_type", ""),
            size=int(data.get("size") or 0),
            attachment_id=data.get("attachment_id", ""),
        )


@dataclass
class Message:
    """A mailbox message as stored locally.

    ``message_id`` is the mailbox's own identifier and is unique across the
    store. ``is_summarized`` flips to True once, when the message is counted
    into a persisted digest.
    """

    message_id: str
    thread_id: str
    sender: str
    recipients: str
    subject: str
    body: str
    received_at: datetime
    cc: str = ""
    bcc: str = ""
    snippet: str = ""
    html_body: str = ""
    labels: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    is_processed: bool = False
    is_summarized: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    db_id: Optional[int] = None


@dataclass
class TopicCategory:
    name: str
    description: str

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description}


@dataclass
class Digest:
    """One persisted daily summary.

    Only the distribution fields change after creation.
    """

    date: date
    content: str
    email_count: int
    topic_categories: List[TopicCategory] = field(default_factory=list)
    email_ids: List[int] = field(default_factory=list)
    is_distributed: bool = False
    distributed_at: Optional[datetime] = None
    distribution_recipients: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    db_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Batch:
    """Contiguous chunk of messages sent to the backend as one request. Not persisted."""

    index: int
    messages: List[Message]
    summary: Optional[str] = None

    @property
    def message_ids(self) -> List[Optional[int]]:
        return [message.db_id for message in self.messages]


__all__ = ["Attachment", "Batch", "Digest", "Message", "TopicCategory"]
