"""Wire protocol shared by the relay and the synchronizer.

Every message is one JSON object sent as a single UTF-8 text frame.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Sender identity the relay uses for its own replies
RELAY_SENDER_ID = "relay"


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into a valid Message."""


class MessageKind(str, Enum):
    """Kinds of messages exchanged over a channel."""

    CONNECT_ANNOUNCE = "connect-announce"
    FULL_SYNC = "full-sync"
    ADD = "add"
    REMOVE = "remove"
    REORDER = "reorder"
    FULL_STATE = "full-state"  # relay -> client, reply to connect-announce


# Kinds carrying a single entry vs. a full ordered list
SINGLE_ENTRY_KINDS = frozenset({MessageKind.ADD, MessageKind.REMOVE})
LIST_KINDS = frozenset(
    {MessageKind.FULL_SYNC, MessageKind.REORDER, MessageKind.FULL_STATE}
)


def unique_entries(entries: list[str]) -> list[str]:
    """Drop repeated entries, keeping the first occurrence of each."""
    return list(dict.fromkeys(entries))


@dataclass
class Message:
    """A single protocol message."""

    kind: MessageKind
    sender_id: str
    entry: str | None = None
    entries: list[str] | None = None

    @classmethod
    def announce(cls, sender_id: str) -> "Message":
        return cls(MessageKind.CONNECT_ANNOUNCE, sender_id)

    @classmethod
    def full_sync(cls, sender_id: str, entries: list[str]) -> "Message":
        return cls(MessageKind.FULL_SYNC, sender_id, entries=list(entries))

    @classmethod
    def add(cls, sender_id: str, entry: str) -> "Message":
        return cls(MessageKind.ADD, sender_id, entry=entry)

    @classmethod
    def remove(cls, sender_id: str, entry: str) -> "Message":
        return cls(MessageKind.REMOVE, sender_id, entry=entry)

    @classmethod
    def reorder(cls, sender_id: str, entries: list[str]) -> "Message":
        return cls(MessageKind.REORDER, sender_id, entries=list(entries))

    @classmethod
    def full_state(cls, entries: list[str]) -> "Message":
        return cls(MessageKind.FULL_STATE, RELAY_SENDER_ID, entries=list(entries))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire record."""
        data: dict[str, Any] = {"kind": self.kind.value, "senderId": self.sender_id}
        if self.kind in SINGLE_ENTRY_KINDS:
            data["entry"] = self.entry
        elif self.kind in LIST_KINDS:
            data["entries"] = list(self.entries or [])
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        """Create from a decoded wire record.

        Raises:
            ProtocolError: If the record is not a valid message.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")

        try:
            kind = MessageKind(data.get("kind"))
        except ValueError:
            raise ProtocolError(f"Unknown message kind: {data.get('kind')!r}") from None

        sender_id = data.get("senderId")
        if not isinstance(sender_id, str) or not sender_id:
            raise ProtocolError("Missing or invalid senderId")

        if kind in SINGLE_ENTRY_KINDS:
            entry = data.get("entry")
            if not isinstance(entry, str):
                raise ProtocolError(f"{kind.value} requires a string entry")
            return cls(kind, sender_id, entry=entry)

        if kind in LIST_KINDS:
            entries = data.get("entries")
            if not isinstance(entries, list) or not all(
                isinstance(e, str) for e in entries
            ):
                raise ProtocolError(f"{kind.value} requires a list of string entries")
            return cls(kind, sender_id, entries=unique_entries(entries))

        return cls(kind, sender_id)

    def encode(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def decode(cls, frame: str | bytes) -> "Message":
        """Parse a JSON text frame.

        Raises:
            ProtocolError: If the frame is not valid JSON or not a valid message.
        """
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ProtocolError(f"Frame is not UTF-8: {e}") from e

        try:
            data = json.loads(frame)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e
        except RecursionError as e:
            raise ProtocolError("JSON nested too deeply") from e

        return cls.from_dict(data)
