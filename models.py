from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field(**kwargs):
    """A timezone-aware timestamp column defaulting to now (UTC)."""
    return Field(default_factory=utc_now, sa_type=DateTime(timezone=True), **kwargs)


class Role(str, Enum):
    donor = "donor"
    home = "home"
    admin = "admin"


class VerificationStatus(str, Enum):
    received = "received"
    reviewing = "reviewing"
    needs_documents = "needs_documents"
    approved = "approved"
    rejected = "rejected"


class AccountStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    banned = "banned"


class NeedCategory(str, Enum):
    food = "food"
    clothing = "clothing"
    education = "education"
    health = "health"
    infrastructure = "infrastructure"


class NeedUrgency(str, Enum):
    low = "low"
    medium = "medium"
    critical = "critical"


class NeedStatus(str, Enum):
    active = "active"
    pending_pickup = "pending_pickup"
    completed = "completed"


class ActivityAction(str, Enum):
    pledge = "pledge"
    complete = "complete"
    cancel = "cancel"
    verify = "verify"
    reject = "reject"
    account_status = "account_status"


class EntityType(str, Enum):
    need = "need"
    home = "home"
    chat = "chat"


class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    display_name: str
    avatar_url: Optional[str] = None
    role: Role = Role.donor
    password_hash: str
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class Home(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    profile_id: int = Field(foreign_key="profile.id", unique=True)

    name: str
    # Legacy flag, true iff verification_status is approved
    verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.received
    account_status: AccountStatus = AccountStatus.active

    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    story: Optional[str] = None
    logo_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    # Key inside the private documents bucket, never a public URL
    registration_doc_path: Optional[str] = None

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class Need(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    home_id: int = Field(foreign_key="home.id", index=True)

    category: NeedCategory
    title: str
    description: str
    urgency: NeedUrgency = NeedUrgency.medium
    quantity: int = 1
    fulfilled_quantity: int = 0
    status: NeedStatus = NeedStatus.active  # active | pending_pickup | completed
    image_url: Optional[str] = None

    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()


class ChatRoom(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    need_id: int = Field(foreign_key="need.id", index=True)
    donor_id: int = Field(foreign_key="profile.id", index=True)
    home_id: int = Field(foreign_key="home.id", index=True)

    quantity: int
    is_active: bool = True
    created_at: datetime = timestamp_field()


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(foreign_key="chatroom.id", index=True)
    sender_id: int = Field(foreign_key="profile.id")

    content: str
    is_read: bool = False
    # Correlation id chosen by the sending client for optimistic display
    client_id: Optional[str] = None
    created_at: datetime = timestamp_field(index=True)


class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="profile.id")

    action: ActivityAction
    entity_type: EntityType
    entity_id: int
    details: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = timestamp_field(index=True)
