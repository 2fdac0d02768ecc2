"""
Client-side view of one chat room.

Messages the user sends show up immediately as ``pending`` entries keyed
by a client-generated correlation id. The entry becomes ``confirmed`` when
the write returns or when the matching push event arrives, whichever
comes first. A failed write marks it ``failed``, hides it, and hands the
text back for the input box. Two messages with identical text never collapse
into one because matching is done on ids only.

This is a helper for API clients such as a UI or a bot. No route imports
it; the server side of a room lives in routers/chat.py.
"""
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from models import utc_now


class DeliveryState(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    failed = "failed"


@dataclass(frozen=True)
class LocalMessage:
    client_id: str
    sender_id: int
    content: str
    created_at: datetime
    state: DeliveryState
    id: Optional[int] = None
    is_read: bool = False


def _parse_created_at(value: Any) -> datetime:
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    # Rows read back from SQLite lose their offset; they are UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class ChatTimeline:
    def __init__(self, room_id: int, me: int):
        self.room_id = room_id
        self.me = me
        self._by_client_id: Dict[str, LocalMessage] = {}
        self._server_ids: Dict[int, str] = {}

    def load(self, history: List[Dict[str, Any]]) -> None:
        for row in history:
            self.apply_incoming(row)

    def send_pending(self, content: str, client_id: Optional[str] = None) -> LocalMessage:
        text = content.strip()
        if not text:
            raise ValueError("Message is empty")
        msg = LocalMessage(
            client_id=client_id or f"local-{uuid.uuid4().hex}",
            sender_id=self.me,
            content=text,
            created_at=utc_now(),
            state=DeliveryState.pending,
        )
        self._by_client_id[msg.client_id] = msg
        return msg

    def confirm(self, row: Dict[str, Any]) -> LocalMessage:
        """Reconcile a pending entry with the row the server stored."""
        return self.apply_incoming(row)

    def fail(self, client_id: str) -> str:
        """Mark a pending entry failed and return its text for the input box."""
        msg = self._by_client_id[client_id]
        if msg.state != DeliveryState.pending:
            raise ValueError(f"Message {client_id} is already {msg.state.value}")
        self._by_client_id[client_id] = replace(msg, state=DeliveryState.failed)
        return msg.content

    def apply_incoming(self, row: Dict[str, Any]) -> LocalMessage:
        server_id = int(row["id"])
        known = self._server_ids.get(server_id)
        if known is not None:
            return self._by_client_id[known]

        key = row.get("client_id") or f"server-{server_id}"
        existing = self._by_client_id.get(key)
        if existing is not None and existing.sender_id != int(row["sender_id"]):
            # Someone else picked the same correlation id
            key = f"server-{server_id}"
            existing = None

        msg = LocalMessage(
            client_id=key,
            sender_id=int(row["sender_id"]),
            content=row["content"],
            created_at=_parse_created_at(row["created_at"]),
            state=DeliveryState.confirmed,
            id=server_id,
            is_read=bool(row.get("is_read", False)),
        )
        self._by_client_id[key] = msg
        self._server_ids[server_id] = key
        return msg

    def mark_read_from_others(self) -> None:
        for key, msg in list(self._by_client_id.items()):
            if msg.sender_id != self.me and not msg.is_read:
                self._by_client_id[key] = replace(msg, is_read=True)

    def messages(self) -> List[LocalMessage]:
        """Visible messages oldest first; server ids break timestamp ties."""
        return sorted(
            (m for m in self._by_client_id.values() if m.state != DeliveryState.failed),
            key=lambda m: (m.created_at, m.id if m.id is not None else float("inf")),
        )

    def pending(self) -> List[LocalMessage]:
        return [m for m in self.messages() if m.state == DeliveryState.pending]

    def unread_for(self, profile_id: int) -> int:
        return sum(
            1
            for m in self._by_client_id.values()
            if m.sender_id != profile_id and not m.is_read and m.id is not None
        )
