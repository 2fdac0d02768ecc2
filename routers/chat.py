import asyncio
import contextlib
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool

from db import SessionDep
from inbox import (
    is_participant,
    mark_room_read,
    room_ids_for,
    unread_count,
    unread_in_room,
)
from lifecycle import can_message
from models import ChatRoom, Home, Message, Need, Profile
from realtime import RoomBroker, Subscription
from schemas import ChatRoomRead, MessageCreate, MessageRead, NeedRead, UnreadCount
from .auth import SESSION_COOKIE, CurrentUserRoleDep, _resolve_session

router = APIRouter(tags=["chat"])
logger = logging.getLogger("givehaven.chat")

CLOSED_ROOM = "This conversation is closed"


def _load_room(session: Session, room_id: int, user: Profile) -> ChatRoom:
    room = session.get(ChatRoom, room_id)
    if room is None or not is_participant(session, room, user):
        raise HTTPException(status_code=404, detail="Chat room not found")
    return room


def _room_view(session: Session, room: ChatRoom, viewer_id: int) -> ChatRoomRead:
    need = session.get(Need, room.need_id)
    home = session.get(Home, room.home_id)
    donor = session.get(Profile, room.donor_id)
    last = session.exec(
        select(Message)
        .where(Message.room_id == room.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
    ).first()
    return ChatRoomRead(
        id=room.id,
        need_id=room.need_id,
        donor_id=room.donor_id,
        home_id=room.home_id,
        quantity=room.quantity,
        is_active=room.is_active,
        created_at=room.created_at,
        can_send=can_message(room, need),
        need=NeedRead.model_validate(need) if need else None,
        home_name=home.name if home else None,
        donor_name=donor.display_name if donor else None,
        last_message=MessageRead.model_validate(last) if last else None,
        unread_count=unread_in_room(session, room.id, viewer_id),
    )


def send_message(
    session: Session,
    broker: RoomBroker,
    room: ChatRoom,
    sender_id: int,
    payload: MessageCreate,
) -> Message:
    """
    Append a message and push it to the room's subscribers.

    Resending with the same client_id returns the stored message instead
    of creating a second one.
    """
    need = session.get(Need, room.need_id)
    if not can_message(room, need):
        raise HTTPException(status_code=409, detail=CLOSED_ROOM)

    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    if payload.client_id:
        existing = session.exec(
            select(Message).where(
                Message.room_id == room.id,
                Message.sender_id == sender_id,
                Message.client_id == payload.client_id,
            )
        ).first()
        if existing is not None:
            return existing

    message = Message(
        room_id=room.id,
        sender_id=sender_id,
        content=content,
        client_id=payload.client_id,
    )
    session.add(message)
    session.commit()
    session.refresh(message)

    broker.publish_insert(room.id, MessageRead.model_validate(message).model_dump(mode="json"))
    return message


@router.get("/rooms", response_model=List[ChatRoomRead])
def list_rooms(session: SessionDep, current: CurrentUserRoleDep):
    """The caller's conversations, newest pledge first."""
    user = current["user"]
    room_ids = room_ids_for(session, user)
    if not room_ids:
        return []
    rooms = session.exec(
        select(ChatRoom)
        .where(ChatRoom.id.in_(room_ids))
        .order_by(ChatRoom.created_at.desc(), ChatRoom.id.desc())
    ).all()
    return [_room_view(session, room, user.id) for room in rooms]


@router.get("/unread-count", response_model=UnreadCount)
def read_unread_count(request: Request, session: SessionDep, current: CurrentUserRoleDep):
    """Badge count; clients re-poll every ``poll_seconds`` and on navigation."""
    return UnreadCount(
        count=unread_count(session, current["user"]),
        poll_seconds=request.app.state.settings.unread_poll_seconds,
    )


@router.get("/rooms/{room_id}", response_model=ChatRoomRead)
def get_room(room_id: int, session: SessionDep, current: CurrentUserRoleDep):
    user = current["user"]
    room = _load_room(session, room_id, user)
    return _room_view(session, room, user.id)


@router.get("/rooms/{room_id}/messages", response_model=List[MessageRead])
def list_messages(room_id: int, session: SessionDep, current: CurrentUserRoleDep):
    """
    Full history oldest first. Opening the room marks the other party's
    messages as read.
    """
    user = current["user"]
    room = _load_room(session, room_id, user)

    mark_room_read(session, room.id, user.id)
    return session.exec(
        select(Message)
        .where(Message.room_id == room.id)
        .order_by(Message.created_at, Message.id)
    ).all()


@router.post("/rooms/{room_id}/messages", response_model=MessageRead, status_code=201)
def post_message(
    room_id: int,
    payload: MessageCreate,
    request: Request,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    user = current["user"]
    room = _load_room(session, room_id, user)
    return send_message(session, request.app.state.broker, room, user.id, payload)


@router.post("/rooms/{room_id}/read")
def mark_read(room_id: int, session: SessionDep, current: CurrentUserRoleDep):
    user = current["user"]
    room = _load_room(session, room_id, user)
    return {"marked": mark_room_read(session, room.id, user.id)}


async def _forward_events(websocket: WebSocket, sub: Subscription) -> None:
    try:
        while True:
            event = await sub.queue.get()
            await websocket.send_json(event)
    except (WebSocketDisconnect, RuntimeError):
        # the socket closed under us; the receive loop cleans up
        logger.debug("Stopped forwarding room %s events", sub.room_id)


def _authorize_socket(websocket: WebSocket, room_id: int, token: Optional[str]) -> Optional[int]:
    """Profile id of the caller when they belong to the room, else None."""
    if not token:
        return None
    with Session(websocket.app.state.engine) as session:
        current = _resolve_session(websocket, session, token)
        room = session.get(ChatRoom, room_id)
        if current is None or room is None or not is_participant(session, room, current["user"]):
            return None
        return current["user"].id


def _store_frame(app, room_id: int, sender_id: int, payload: MessageCreate) -> Optional[str]:
    """Store one socket frame; returns the refusal detail, if any."""
    with Session(app.state.engine) as session:
        room = session.get(ChatRoom, room_id)
        try:
            send_message(session, app.state.broker, room, sender_id, payload)
        except HTTPException as exc:
            logger.info("Send by %s to room %s refused: %s", sender_id, room_id, exc.detail)
            return exc.detail
    return None


@router.websocket("/rooms/{room_id}/ws")
async def room_socket(websocket: WebSocket, room_id: int):
    """
    Live feed of a room. The server pushes ``{"event": "INSERT", "message": ...}``
    for every new message; the client may send ``{"content", "client_id"}``
    frames, which are stored exactly like the POST endpoint does.
    """
    token = websocket.cookies.get(SESSION_COOKIE)
    me = await run_in_threadpool(_authorize_socket, websocket, room_id, token)
    if me is None:
        await websocket.close(code=4403)
        return

    broker: RoomBroker = websocket.app.state.broker
    await websocket.accept()
    sub = broker.subscribe(room_id)
    forwarder = asyncio.create_task(_forward_events(websocket, sub))
    logger.info("Profile %s joined room %s", me, room_id)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
                payload = MessageCreate(**frame)
            except (KeyError, TypeError, ValueError):
                # binary frame, malformed JSON or a body MessageCreate rejects
                await websocket.send_json({"event": "ERROR", "detail": "Invalid message"})
                continue

            refused = await run_in_threadpool(_store_frame, websocket.app, room_id, me, payload)
            if refused is not None:
                await websocket.send_json(
                    {"event": "ERROR", "client_id": payload.client_id, "detail": refused}
                )
    except WebSocketDisconnect:
        pass
    finally:
        forwarder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await forwarder
        broker.unsubscribe(sub)
        logger.info("Profile %s left room %s", me, room_id)
