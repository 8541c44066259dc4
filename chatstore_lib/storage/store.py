"""Namespace router over a storage engine.

:class:`Store` wraps one :class:`~chatstore_lib.storage.base.Engine` and
exposes a typed router per namespace::

    store = Store(FileEngine(".store/5491112345678"))
    await store.contact.set(Contact.from_raw({"id": "5491112345678@s.whatsapp.net"}))
    recent = await store.chat.page(offset=0, limit=20)
    await store.chat.delete(cid)   # removes every message and content blob too

Every read goes to the engine; nothing is cached. Concurrent writes to the
same key are last-write-wins, so callers doing read-modify-write (for
example :meth:`MessageRouter.set_status`) must serialize per key themselves.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from chatstore_lib.models import Chat, Contact, Message, MessageStatus

from . import keys
from .base import Engine
from .errors import DecodeError
from .keys import Namespace
from .pagination import iter_matching, paginate_keys
from .serializer import JSONSerializer, Serializer

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_LIMIT = 50
DEFAULT_MESSAGE_LIMIT = 20


def _shape_filter(namespace: Namespace, *ids: Optional[str]):
    """Predicate accepting only keys of `namespace` whose ids agree with `ids` (None = any)."""

    def accept(key: str) -> bool:
        parsed = keys.try_parse(key)
        if parsed is None or parsed.namespace is not namespace:
            return False
        return all(want is None or want == got for want, got in zip(ids, parsed.ids))

    return accept


class Store:
    """Typed access to documents, contacts, chats, messages and content on one engine."""

    def __init__(self, engine: Engine, serializer: Serializer | None = None) -> None:
        self.engine = engine
        self.serializer = serializer or JSONSerializer()
        self.document = DocumentRouter(self)
        self.contact = ContactRouter(self)
        self.chat = ChatRouter(self)
        self.message = MessageRouter(self)
        self.content = ContentRouter(self)

    # -- encoding -------------------------------------------------------

    def encode(self, value: Any) -> str:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        return self.serializer.dump(value)

    def decode(self, data: str, model: Type[M] | None = None) -> Any:
        value = self.serializer.load(data)
        if model is None:
            return value
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            raise DecodeError(f"stored {model.__name__} record is invalid: {exc}") from exc

    async def read(self, key: str, model: Type[M] | None = None) -> Any:
        """Fetch and decode `key`; None when absent."""
        data = await self.engine.get(key)
        if data is None:
            return None
        return self.decode(data, model)

    async def write(self, key: str, value: Any) -> bool:
        if value is None:
            return await self.engine.set(key, None)
        return await self.engine.set(key, self.encode(value))

    # -- listing --------------------------------------------------------

    async def match(self, namespace: Namespace, *ids: Optional[str]) -> AsyncIterator[keys.Key]:
        """Lazily yield parsed keys of `namespace` agreeing with `ids` (None = any)."""
        glob = keys.pattern(namespace, *ids)
        async for key in iter_matching(self.engine, glob, _shape_filter(namespace, *ids)):
            yield keys.parse(key)

    async def paginate(
        self,
        namespace: Namespace | str,
        *ids: Optional[str],
        offset: int = 0,
        limit: int = DEFAULT_LIMIT,
    ) -> List[Any]:
        """Decoded records of `namespace` under `ids`, most recently written first.

        ``paginate('message', cid, offset=0, limit=20)`` returns the 20
        newest messages of one chat. Records deleted between listing and
        reading are skipped.
        """
        ns = Namespace(namespace)
        glob = keys.pattern(ns, *ids)
        page = await paginate_keys(self.engine, glob, offset, limit, _shape_filter(ns, *ids))
        model = _MODELS.get(ns)
        records = []
        for key in page:
            record = await self.read(key, model)
            if record is not None:
                records.append(record)
        return records

    async def clear(self) -> bool:
        return await self.engine.clear()


class _Router:
    namespace: Namespace

    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def engine(self) -> Engine:
        return self._store.engine


class DocumentRouter(_Router):
    """Opaque JSON documents stored under a caller-chosen name (credentials, app state)."""

    namespace = Namespace.DOCUMENT

    async def set(self, name: str, value: Any) -> bool:
        """Store `value` under `name`; ``None`` deletes it."""
        return await self._store.write(keys.build(self.namespace, name), value)

    async def get(self, name: str, default: Any = None) -> Any:
        value = await self._store.read(keys.build(self.namespace, name))
        return default if value is None else value

    async def has(self, name: str) -> bool:
        return await self.engine.has(keys.build(self.namespace, name))

    async def delete(self, name: str) -> bool:
        return await self.engine.delete(keys.build(self.namespace, name))

    async def keys(self) -> AsyncIterator[str]:
        async for key in self._store.match(self.namespace):
            yield key.ids[0]

    async def values(self) -> AsyncIterator[Any]:
        async for _name, value in self.entries():
            yield value

    async def entries(self) -> AsyncIterator[Tuple[str, Any]]:
        async for name in self.keys():
            value = await self.get(name)
            if value is not None:
                yield name, value

    async def page(self, offset: int = 0, limit: int = DEFAULT_LIMIT) -> List[Any]:
        return await self._store.paginate(self.namespace, offset=offset, limit=limit)


class _RecordRouter(_Router):
    """Routers for records keyed by a single remote identity (contacts, chats)."""

    model: Type[BaseModel]

    async def set(self, record) -> bool:
        return await self._store.write(keys.build(self.namespace, record.id), record)

    async def get(self, id: str):
        return await self._store.read(keys.build(self.namespace, id), self.model)

    async def has(self, id: str) -> bool:
        return await self.engine.has(keys.build(self.namespace, id))

    async def delete(self, id: str) -> bool:
        return await self.engine.delete(keys.build(self.namespace, id))

    async def keys(self) -> AsyncIterator[str]:
        async for key in self._store.match(self.namespace):
            yield key.ids[0]

    async def values(self) -> AsyncIterator[Any]:
        async for _id, record in self.entries():
            yield record

    async def entries(self) -> AsyncIterator[Tuple[str, Any]]:
        async for id in self.keys():
            record = await self.get(id)
            if record is not None:
                yield id, record

    async def page(self, offset: int = 0, limit: int = DEFAULT_LIMIT) -> List[Any]:
        return await self._store.paginate(self.namespace, offset=offset, limit=limit)


class ContactRouter(_RecordRouter):
    namespace = Namespace.CONTACT
    model = Contact

    async def set(self, contact: Contact) -> bool:
        return await super().set(contact)

    async def get(self, id: str) -> Optional[Contact]:
        return await super().get(id)


class ChatRouter(_RecordRouter):
    namespace = Namespace.CHAT
    model = Chat

    async def set(self, chat: Chat) -> bool:
        return await super().set(chat)

    async def get(self, id: str) -> Optional[Chat]:
        return await super().get(id)

    async def delete(self, id: str) -> bool:
        """Delete the chat and every key beneath it (messages, content).

        Returns True if anything was found and everything found is gone.
        """
        subtree = keys.prefix(self.namespace, id)
        # Ids may contain '*' themselves, so the glob can reach other chats.
        doomed = [
            key
            async for key in iter_matching(self.engine, subtree + keys.WILDCARD, lambda k: k.startswith(subtree))
        ]
        ok = True
        # Children first, so the chat record is the last thing to disappear.
        for key in sorted(doomed, key=len, reverse=True):
            if not await self.engine.delete(key) and await self.engine.has(key):
                logger.warning("Could not delete %s while deleting chat %s", key, id)
                ok = False
        logger.debug("Deleted chat %s (%d key(s))", id, len(doomed))
        return bool(doomed) and ok


class MessageRouter(_Router):
    """Messages, keyed by ``(cid, id)``."""

    namespace = Namespace.MESSAGE

    def _key(self, cid: str, mid: str) -> str:
        return keys.build(self.namespace, cid, mid)

    async def set(self, message: Message) -> bool:
        return await self._store.write(self._key(message.cid, message.id), message)

    async def get(self, cid: str, mid: str) -> Optional[Message]:
        return await self._store.read(self._key(cid, mid), Message)

    async def has(self, cid: str, mid: str) -> bool:
        return await self.engine.has(self._key(cid, mid))

    async def delete(self, cid: str, mid: str) -> bool:
        """Delete the message record and its content, if any."""
        await self._store.content.delete(cid, mid)
        return await self.engine.delete(self._key(cid, mid))

    async def find(self, mid: str) -> Optional[Message]:
        """First message with id `mid` in any chat.

        Message ids are only unique per chat; prefer :meth:`get` when the
        chat is known.
        """
        async for key in self._store.match(self.namespace, None, mid):
            return await self.get(*key.ids)
        return None

    async def keys(self, cid: str | None = None) -> AsyncIterator[Tuple[str, str]]:
        async for key in self._store.match(self.namespace, cid):
            yield key.ids

    async def values(self, cid: str | None = None) -> AsyncIterator[Message]:
        async for _ids, message in self.entries(cid):
            yield message

    async def entries(self, cid: str | None = None) -> AsyncIterator[Tuple[Tuple[str, str], Message]]:
        async for ids in self.keys(cid):
            message = await self.get(*ids)
            if message is not None:
                yield ids, message

    async def page(self, cid: str, offset: int = 0, limit: int = DEFAULT_MESSAGE_LIMIT) -> List[Message]:
        return await self._store.paginate(self.namespace, cid, offset=offset, limit=limit)

    async def edit(self, cid: str, mid: str, content: bytes, caption: str | None = None) -> bool:
        """Apply an edit: overwrite the content, flag the record as edited.

        This is the only mutation allowed on a stored message besides its
        status. Returns False if the message does not exist.
        """
        message = await self.get(cid, mid)
        if message is None:
            return False
        message.edited = True
        if caption is not None:
            message.caption = caption
        written = await self._store.content.set(cid, mid, content)
        return await self.set(message) and written

    async def set_status(self, cid: str, mid: str, status: MessageStatus) -> bool:
        """Advance the delivery status. Returns True only if the record changed.

        Status never goes backwards: a lower or equal status is ignored.
        """
        message = await self.get(cid, mid)
        if message is None:
            return False
        status = MessageStatus(status)
        if status <= message.status:
            logger.debug("Ignoring status %s for %s/%s (already %s)", status.name, cid, mid, message.status.name)
            return False
        message.status = status
        return await self.set(message)


class ContentRouter(_Router):
    """Raw bytes attached to a message, stored apart from the message record."""

    namespace = Namespace.CONTENT

    def _key(self, cid: str, mid: str) -> str:
        return keys.build(self.namespace, cid, mid)

    async def set(self, cid: str, mid: str, data: bytes | None) -> bool:
        """Store `data` for the message; ``None`` deletes it."""
        if data is not None and not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"content must be bytes, got {type(data).__name__}")
        return await self._store.write(self._key(cid, mid), None if data is None else bytes(data))

    async def get(self, cid: str, mid: str) -> Optional[bytes]:
        """The stored bytes, or None when the content was never downloaded."""
        value = await self._store.read(self._key(cid, mid))
        if value is not None and not isinstance(value, bytes):
            raise DecodeError(f"content for {cid}/{mid} is not a binary payload")
        return value

    async def has(self, cid: str, mid: str) -> bool:
        return await self.engine.has(self._key(cid, mid))

    async def delete(self, cid: str, mid: str) -> bool:
        return await self.engine.delete(self._key(cid, mid))

    async def keys(self, cid: str | None = None) -> AsyncIterator[Tuple[str, str]]:
        async for key in self._store.match(self.namespace, cid):
            yield key.ids

    async def values(self, cid: str | None = None) -> AsyncIterator[bytes]:
        async for _ids, data in self.entries(cid):
            yield data

    async def entries(self, cid: str | None = None) -> AsyncIterator[Tuple[Tuple[str, str], bytes]]:
        async for ids in self.keys(cid):
            data = await self.get(*ids)
            if data is not None:
                yield ids, data


_MODELS = {
    Namespace.CONTACT: Contact,
    Namespace.CHAT: Chat,
    Namespace.MESSAGE: Message,
}
