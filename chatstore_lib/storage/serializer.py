"""Wire encoding for stored values.

Engines store strings only. Serializers turn Python values into those
strings and back. JSON is the default; ``bytes`` anywhere inside a value are
written as ``{"type": "Buffer", "data": "<base64>"}`` and revived on load, so
binary content blobs and plain JSON records share one format.
"""
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Protocol

from .errors import DecodeError

BUFFER_TYPE = "Buffer"


class Serializer(Protocol):
    """Serialize/deserialize Python values for engines that store text.

    Implementations should be symmetric: `dump` -> str, `load` <- str.
    `load` raises :class:`DecodeError` for data it cannot decode.
    """

    def dump(self, value: Any) -> str: ...

    def load(self, data: str) -> Any: ...


def _buffer_default(o: Any) -> Any:
    if isinstance(o, (bytes, bytearray, memoryview)):
        return {"type": BUFFER_TYPE, "data": base64.b64encode(bytes(o)).decode("ascii")}
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def _is_buffer_marker(obj: dict) -> bool:
    return len(obj) == 2 and obj.get("type") == BUFFER_TYPE and isinstance(obj.get("data"), str)


def _reject_markers(value: Any) -> None:
    """Refuse plain dicts shaped like a binary payload; they would not load back as dicts."""
    if isinstance(value, dict):
        if _is_buffer_marker(value):
            raise ValueError('{"type": "Buffer", "data": ...} is reserved for binary payloads; pass bytes instead')
        for item in value.values():
            _reject_markers(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _reject_markers(item)


def _buffer_hook(obj: dict) -> Any:
    if _is_buffer_marker(obj):
        try:
            return base64.b64decode(obj["data"].encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise DecodeError("malformed binary payload") from exc
    return obj


class JSONSerializer:
    """JSON with the binary extension. Caller must ensure values are otherwise JSON-serializable.

    `dump` raises ValueError for a dict that already has the binary payload
    shape, so every value it accepts loads back equal.
    """

    def dump(self, value: Any) -> str:
        _reject_markers(value)
        return json.dumps(value, default=_buffer_default, ensure_ascii=False)

    def load(self, data: str) -> Any:
        try:
            return json.loads(data, object_hook=_buffer_hook)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"stored value is not valid JSON: {exc}") from exc


class EncryptedSerializer:
    """Serializer that encrypts payloads using Fernet (symmetric, authenticated).

    Wraps a base serializer (JSON by default) and stores a framed JSON
    object holding the ciphertext, so encrypted values are still plain
    strings as far as the engine is concerned. Useful for credential
    documents kept on shared media.

    - With `key`, the Fernet key is used directly.
    - With `password`, each payload carries a random salt and the PBKDF2
      iteration count so the key can be re-derived on load.
    """

    def __init__(
        self,
        *,
        key: bytes | None = None,
        password: str | None = None,
        iterations: int = 390000,
        base_serializer: Serializer | None = None,
    ) -> None:
        if key is None and password is None:
            raise ValueError("EncryptedSerializer requires either `key` or `password`")
        self._key = key
        self._password = password
        self._iterations = iterations
        self.base_serializer = base_serializer or JSONSerializer()

    def _derive_key(self, password: str, salt: bytes, iterations: int) -> bytes:
        from cryptography.hazmat.primitives import hashes
        from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))

    def dump(self, value: Any) -> str:
        import os
        from cryptography.fernet import Fernet

        inner = self.base_serializer.dump(value).encode("utf-8")

        if self._password is not None:
            salt = os.urandom(16)
            f = Fernet(self._derive_key(self._password, salt, self._iterations))
            frame = {
                "v": 1,
                "mode": "password",
                "kdf": "pbkdf2",
                "iterations": self._iterations,
                "salt": base64.urlsafe_b64encode(salt).decode("ascii"),
                "ct": f.encrypt(inner).decode("ascii"),
            }
        else:
            frame = {"v": 1, "mode": "key", "ct": Fernet(self._key).encrypt(inner).decode("ascii")}
        return json.dumps(frame)

    def load(self, data: str) -> Any:
        """Parse framed blob, derive key if needed, decrypt and deserialize."""
        from cryptography.fernet import Fernet, InvalidToken

        try:
            frame = json.loads(data)
        except json.JSONDecodeError as exc:
            raise DecodeError("encrypted frame is not valid JSON") from exc
        if not isinstance(frame, dict):
            raise DecodeError("unknown frame format")

        mode = frame.get("mode")
        try:
            if mode == "password":
                if self._password is None:
                    raise DecodeError("serializer was not configured with a password")
                salt = base64.urlsafe_b64decode(frame["salt"].encode("ascii"))
                iterations = frame.get("iterations", self._iterations)
                f = Fernet(self._derive_key(self._password, salt, iterations))
            elif mode == "key":
                if self._key is None:
                    raise DecodeError("serializer was not configured with a key")
                f = Fernet(self._key)
            else:
                raise DecodeError("unknown frame format")
            plain = f.decrypt(frame["ct"].encode("ascii"))
        except InvalidToken as exc:
            raise DecodeError("could not decrypt stored value") from exc
        except (KeyError, AttributeError, binascii.Error) as exc:
            raise DecodeError("malformed encrypted frame") from exc
        return self.base_serializer.load(plain.decode("utf-8"))
