"""Per-account persistence for a messaging client: contacts, chats, messages and content."""

from chatstore_lib.models import Chat, ChatType, Contact, Message, MessageStatus, MessageType
from chatstore_lib.storage import Store, create_store

__all__ = ["Chat", "ChatType", "Contact", "Message", "MessageStatus", "MessageType", "Store", "create_store"]
