from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import (
    AccountStatus,
    ActivityAction,
    EntityType,
    NeedCategory,
    NeedStatus,
    NeedUrgency,
    Role,
    VerificationStatus,
)


class UserCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(min_length=1)
    password: str = Field(min_length=6)
    role: Literal["donor", "home"]


class LoginData(BaseModel):
    email: EmailStr
    password: str


class ProfileRead(BaseModel):
    id: int
    email: EmailStr
    display_name: str
    avatar_url: Optional[str] = None
    role: Role

    model_config = ConfigDict(from_attributes=True)


class PublicProfile(BaseModel):
    id: int
    display_name: str
    avatar_url: Optional[str] = None
    role: Role

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1)
    avatar_url: Optional[str] = None


class HomeRead(BaseModel):
    id: int
    profile_id: int
    name: str
    verified: bool
    verification_status: VerificationStatus
    account_status: AccountStatus
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    story: Optional[str] = None
    logo_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HomeSummary(BaseModel):
    id: int
    name: str
    verified: bool
    logo_url: Optional[str] = None
    address: str

    model_config = ConfigDict(from_attributes=True)


class HomeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = Field(default=None, min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    story: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None


class AdminHomeRead(HomeRead):
    status_label: str
    status_description: str
    registration_doc_url: Optional[str] = None


class HomeStats(BaseModel):
    active_needs: int
    pending_pickup: int
    completed_this_month: int
    unread_messages: int


class NeedCreate(BaseModel):
    category: NeedCategory
    title: str = Field(min_length=1)
    description: str = ""
    urgency: NeedUrgency = NeedUrgency.medium
    quantity: int = Field(default=1, ge=1)


class NeedUpdate(BaseModel):
    category: Optional[NeedCategory] = None
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    urgency: Optional[NeedUrgency] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = None


class NeedRead(BaseModel):
    id: int
    home_id: int
    category: NeedCategory
    title: str
    description: str
    urgency: NeedUrgency
    quantity: int
    fulfilled_quantity: int
    status: NeedStatus
    image_url: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicNeed(NeedRead):
    home: HomeSummary


class AdminNeedRead(NeedRead):
    home_name: str


class PublicHomeProfile(BaseModel):
    home: HomeSummary
    story: Optional[str] = None
    cover_image_url: Optional[str] = None
    needs: List[NeedRead]


class PledgeCreate(BaseModel):
    # Range is checked against the need itself so every failure reads the same
    quantity: int = 1


class PledgeCreated(BaseModel):
    chat_room_id: int


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=4000)
    client_id: Optional[str] = Field(default=None, max_length=64)


class MessageRead(BaseModel):
    id: int
    room_id: int
    sender_id: int
    content: str
    is_read: bool
    client_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatRoomRead(BaseModel):
    id: int
    need_id: int
    donor_id: int
    home_id: int
    quantity: int
    is_active: bool
    created_at: datetime
    can_send: bool
    need: Optional[NeedRead] = None
    home_name: Optional[str] = None
    donor_name: Optional[str] = None
    last_message: Optional[MessageRead] = None
    unread_count: int = 0


class UnreadCount(BaseModel):
    count: int
    poll_seconds: int


class VerificationUpdate(BaseModel):
    status: VerificationStatus
    reason: Optional[str] = None


class AccountStatusUpdate(BaseModel):
    status: AccountStatus


class ActivityLogRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: ActivityAction
    entity_type: EntityType
    entity_id: int
    metadata: dict
    created_at: datetime


class AdminStats(BaseModel):
    total_homes: int
    verified_homes: int
    pending_homes: int
    active_needs: int
    pending_pickup: int
    completed_this_month: int
    total_donors: int


class DonorStats(BaseModel):
    id: int
    display_name: str
    total_pledges: int
    completed_pledges: int
    success_rate: int
    last_active: Optional[datetime] = None


class CategoryCount(BaseModel):
    name: str
    value: int


class CompletionPoint(BaseModel):
    date: str
    count: int
