"""Record types persisted by the store.

Contacts and chats are keyed by the remote identity string (a JID such as
``5491112345678@s.whatsapp.net`` or ``120363...@g.us``). Messages are keyed
by ``(cid, id)``; a message id is only unique inside its chat.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

GROUP_SUFFIX = "@g.us"


def local_part(jid: str) -> str:
    """Text before the ``@`` of an identity string (the phone for user JIDs)."""
    return jid.split("@", 1)[0]


class Contact(BaseModel):
    id: str
    name: str
    photo: Optional[str] = None
    phone: str
    content: str = ""
    # Unnormalized upstream payload; the fields above are projections of it.
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Contact":
        """Build a contact, recomputing the projections from `raw`.

        `raw` must carry ``id``; ``name``, ``notify``, ``imgUrl`` and
        ``status`` are used when present.
        """
        jid = raw["id"]
        return cls(
            id=jid,
            name=raw.get("name") or raw.get("notify") or local_part(jid),
            photo=raw.get("imgUrl"),
            phone=local_part(jid),
            content=raw.get("status") or "",
            raw=dict(raw),
        )


class ChatType(str, Enum):
    CONTACT = "contact"
    GROUP = "group"


class Chat(BaseModel):
    id: str
    name: str
    photo: Optional[str] = None
    phone: str
    type: ChatType

    @classmethod
    def from_id(cls, cid: str, name: Optional[str] = None, photo: Optional[str] = None) -> "Chat":
        is_group = cid.endswith(GROUP_SUFFIX)
        return cls(
            id=cid,
            name=name or local_part(cid),
            photo=photo,
            phone="" if is_group else local_part(cid),
            type=ChatType.GROUP if is_group else ChatType.CONTACT,
        )


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    LOCATION = "location"
    POLL = "poll"


class MessageStatus(IntEnum):
    """Delivery status. Only ever moves forward."""

    PENDING = 0
    SENT = 1
    DELIVERED = 2
    READ = 3
    PLAYED = 4


class Message(BaseModel):
    id: str
    cid: str
    uid: str
    # Quoted or target message, when any.
    mid: Optional[str] = None
    type: MessageType = MessageType.TEXT
    mime: str = "text/plain"
    caption: str = ""
    me: bool = False
    status: MessageStatus = MessageStatus.PENDING
    created_at: datetime
    edited: bool = False
