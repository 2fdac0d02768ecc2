"""Unread counters and read receipts for chat rooms."""
from typing import List, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from models import ChatRoom, Home, Message, Need, NeedStatus, Profile, Role


def home_for_profile(session: Session, profile_id: int) -> Optional[Home]:
    return session.exec(select(Home).where(Home.profile_id == profile_id)).first()


def room_ids_for(session: Session, profile: Profile) -> List[int]:
    """Rooms the profile takes part in, as donor or as home owner."""
    if profile.role == Role.donor:
        stmt = select(ChatRoom.id).where(ChatRoom.donor_id == profile.id)
    elif profile.role == Role.home:
        home = home_for_profile(session, profile.id)
        if home is None:
            return []
        stmt = select(ChatRoom.id).where(ChatRoom.home_id == home.id)
    else:
        return []
    return list(session.exec(stmt).all())


def is_participant(session: Session, room: ChatRoom, profile: Profile) -> bool:
    if profile.role == Role.donor:
        return room.donor_id == profile.id
    if profile.role == Role.home:
        home = home_for_profile(session, profile.id)
        return home is not None and room.home_id == home.id
    return False


def unread_count(session: Session, profile: Profile) -> int:
    """Messages from the other party the profile has not opened yet."""
    room_ids = room_ids_for(session, profile)
    if not room_ids:
        return 0
    stmt = select(func.count(Message.id)).where(
        Message.room_id.in_(room_ids),
        Message.sender_id != profile.id,
        Message.is_read == False,  # noqa: E712
    )
    return session.exec(stmt).one()


def unread_in_room(session: Session, room_id: int, profile_id: int) -> int:
    stmt = select(func.count(Message.id)).where(
        Message.room_id == room_id,
        Message.sender_id != profile_id,
        Message.is_read == False,  # noqa: E712
    )
    return session.exec(stmt).one()


def mark_room_read(session: Session, room_id: int, profile_id: int) -> int:
    result = session.execute(
        update(Message)
        .where(
            Message.room_id == room_id,
            Message.sender_id != profile_id,
            Message.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount


def pending_pledges_count(session: Session, home_id: int) -> int:
    """Open pledges on needs that are waiting for pickup."""
    stmt = (
        select(func.count(ChatRoom.id))
        .join(Need, Need.id == ChatRoom.need_id)
        .where(
            ChatRoom.home_id == home_id,
            ChatRoom.is_active == True,  # noqa: E712
            Need.status == NeedStatus.pending_pickup,
        )
    )
    return session.exec(stmt).one()
