import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from sqlalchemy import delete, or_, update
from sqlmodel import Session, select
from starlette.datastructures import UploadFile

from activity import log_activity
from db import SessionDep
from lifecycle import (
    PLEDGE_FAILED,
    PledgeRejected,
    TransitionRejected,
    ensure_completable,
    ensure_deletable,
    ensure_editable,
)
from models import (
    AccountStatus,
    ActivityAction,
    ChatRoom,
    EntityType,
    Home,
    Need,
    NeedCategory,
    NeedStatus,
    NeedUrgency,
    Role,
    utc_now,
)
from pledges import create_pledge
from schemas import (
    HomeSummary,
    NeedCreate,
    NeedRead,
    NeedUpdate,
    PledgeCreate,
    PledgeCreated,
    PublicNeed,
)
from storage import StorageError, make_key
from .auth import CurrentUserRoleDep, OptionalUserRoleDep, ensure_role
from .homes import get_my_home

router = APIRouter(tags=["needs"])
logger = logging.getLogger("givehaven.needs")


def _public_need(need: Need, home: Home) -> PublicNeed:
    return PublicNeed(
        **NeedRead.model_validate(need).model_dump(),
        home=HomeSummary.model_validate(home),
    )


def _load_own_need(session: Session, need_id: int, home: Home) -> Need:
    need = session.get(Need, need_id)
    if need is None or need.home_id != home.id:
        raise HTTPException(status_code=404, detail="Need not found")
    return need


def delete_unpledged(session: Session, need_id: int) -> None:
    """
    Delete a need only while it is still active with nothing pledged.

    Raises 409 when a pledge or status change got there first.
    """
    removed = session.execute(
        delete(Need)
        .where(
            Need.id == need_id,
            Need.status == NeedStatus.active,
            Need.fulfilled_quantity == 0,
        )
        .execution_options(synchronize_session=False)
    )
    if removed.rowcount != 1:
        session.rollback()
        raise HTTPException(status_code=409, detail="Needs with pledges cannot be deleted")


@router.get("/", response_model=List[PublicNeed])
def explore_needs(
    session: SessionDep,
    category: Optional[NeedCategory] = None,
    urgency: Optional[NeedUrgency] = None,
    q: Optional[str] = None,
):
    """
    Active needs of approved homes, newest first, optionally filtered by
    category, urgency and a free-text search over title, description and
    home name.
    """
    query = (
        select(Need, Home)
        .join(Home, Home.id == Need.home_id)
        .where(
            Need.status == NeedStatus.active,
            Home.verified == True,  # noqa: E712
            Home.account_status == AccountStatus.active,
        )
    )

    if category is not None:
        query = query.where(Need.category == category)

    if urgency is not None:
        query = query.where(Need.urgency == urgency)

    if q:
        pattern = f"%{q.strip()}%"
        query = query.where(
            or_(
                Need.title.ilike(pattern),
                Need.description.ilike(pattern),
                Home.name.ilike(pattern),
            )
        )

    rows = session.exec(query.order_by(Need.created_at.desc(), Need.id.desc())).all()
    return [_public_need(need, home) for need, home in rows]


@router.get("/mine", response_model=List[NeedRead])
def my_needs(session: SessionDep, current: CurrentUserRoleDep, status: Optional[NeedStatus] = None):
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])

    query = select(Need).where(Need.home_id == home.id)
    if status is not None:
        query = query.where(Need.status == status)
    return session.exec(query.order_by(Need.created_at.desc(), Need.id.desc())).all()


@router.post("/", response_model=NeedRead, status_code=201)
def create_need(need_in: NeedCreate, session: SessionDep, current: CurrentUserRoleDep):
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])

    if home.account_status != AccountStatus.active:
        raise HTTPException(status_code=403, detail="Your account is not active.")
    if not home.verified:
        raise HTTPException(
            status_code=403,
            detail="Your home must be verified before posting needs.",
        )

    need = Need(home_id=home.id, **need_in.model_dump())
    session.add(need)
    session.commit()
    session.refresh(need)
    logger.info("Home %s posted need %s", home.id, need.id)
    return need


@router.get("/{need_id}", response_model=PublicNeed)
def get_need(need_id: int, session: SessionDep, current: OptionalUserRoleDep):
    """
    A need is visible to everyone while its home is approved and active,
    and always to the home that owns it.
    """
    need = session.get(Need, need_id)
    if need is None:
        raise HTTPException(status_code=404, detail="Need not found")
    home = session.get(Home, need.home_id)

    is_owner = bool(current) and home.profile_id == current["user"].id
    is_public = home.verified and home.account_status == AccountStatus.active
    if not (is_owner or is_public):
        raise HTTPException(status_code=404, detail="Need not found")
    return _public_need(need, home)


@router.patch("/{need_id}", response_model=NeedRead)
def update_need(
    need_id: int,
    update_in: NeedUpdate,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    """
    Edit an active need.

    The write is a conditional UPDATE so a pledge landing between the
    checks below and the commit can never leave the need over-filled.
    """
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])
    need = _load_own_need(session, need_id, home)

    try:
        ensure_editable(need)
    except TransitionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    changes = update_in.model_dump(exclude_unset=True)
    quantity = changes.get("quantity")
    if quantity is not None and quantity < need.fulfilled_quantity:
        raise HTTPException(
            status_code=400,
            detail=f"Quantity cannot be lower than the {need.fulfilled_quantity} already pledged.",
        )

    stmt = update(Need).where(Need.id == need.id, Need.status == NeedStatus.active)
    if quantity is not None:
        stmt = stmt.where(Need.fulfilled_quantity <= quantity)

    edited = session.execute(
        stmt.values(**changes, updated_at=utc_now()).execution_options(synchronize_session=False)
    )
    if edited.rowcount != 1:
        session.rollback()
        logger.info("Edit of need %s lost a race with a pledge or completion", need.id)
        raise HTTPException(
            status_code=409,
            detail="This need changed while you were editing it. Please reload and try again.",
        )

    session.execute(
        update(Need)
        .where(
            Need.id == need.id,
            Need.status == NeedStatus.active,
            Need.fulfilled_quantity > 0,
            Need.fulfilled_quantity >= Need.quantity,
        )
        .values(status=NeedStatus.pending_pickup)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    session.refresh(need)
    return need


@router.post("/{need_id}/image", response_model=NeedRead)
async def upload_need_image(
    need_id: int,
    request: Request,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])
    need = _load_own_need(session, need_id, home)

    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile) or not upload.filename:
        raise HTTPException(status_code=400, detail="Please choose a file")

    try:
        need.image_url = request.app.state.storage.upload(
            "images", make_key("needs", upload.filename), await upload.read()
        )
    except StorageError as exc:
        # The need stays usable without a photo
        logger.warning("Image upload failed for need %s: %s", need.id, exc)
        raise HTTPException(status_code=400, detail="Failed to upload image")

    need.updated_at = utc_now()
    session.add(need)
    session.commit()
    session.refresh(need)
    return need


@router.delete("/{need_id}", status_code=204)
def delete_need(need_id: int, session: SessionDep, current: CurrentUserRoleDep):
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])
    need = _load_own_need(session, need_id, home)

    try:
        ensure_deletable(need)
    except TransitionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    delete_unpledged(session, need.id)
    session.commit()
    logger.info("Home %s deleted need %s", home.id, need_id)
    return Response(status_code=204)


@router.post("/{need_id}/complete", response_model=NeedRead)
def confirm_receipt(need_id: int, session: SessionDep, current: CurrentUserRoleDep):
    """
    The home confirms the donation arrived: the need is completed and
    every chat room opened on it is archived.
    """
    ensure_role(current["role"], Role.home)
    user = current["user"]
    home = get_my_home(session, user)
    need = _load_own_need(session, need_id, home)

    try:
        ensure_completable(need)
    except TransitionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    now = utc_now()
    need.status = NeedStatus.completed
    need.completed_at = now
    need.updated_at = now
    session.add(need)

    archived = session.execute(
        update(ChatRoom)
        .where(ChatRoom.need_id == need.id, ChatRoom.is_active == True)  # noqa: E712
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )

    log_activity(
        session,
        user.id,
        ActivityAction.complete,
        EntityType.need,
        need.id,
        need_title=need.title,
        home_name=home.name,
        quantity=need.quantity,
    )
    session.commit()
    session.refresh(need)
    logger.info("Need %s completed, %s room(s) archived", need.id, archived.rowcount)
    return need


@router.post("/{need_id}/pledges", response_model=PledgeCreated, status_code=201)
def pledge_to_need(
    need_id: int,
    pledge_in: PledgeCreate,
    session: SessionDep,
    current: OptionalUserRoleDep,
):
    """
    Pledge some quantity of a need. Returns the new chat room id so the
    donor can be taken straight to the conversation.

    Every failure, a missing donor session included, answers with the
    same PLEDGE_FAILED message.
    """
    if not current or current["role"] != Role.donor.value:
        logger.info("Pledge on need %s refused: caller is not a logged-in donor", need_id)
        raise HTTPException(status_code=409, detail=PLEDGE_FAILED)
    user = current["user"]

    try:
        room = create_pledge(session, need_id, user.id, pledge_in.quantity)
    except PledgeRejected as exc:
        logger.info("Pledge by donor %s on need %s rejected: %s", user.id, need_id, exc)
        raise HTTPException(status_code=409, detail=PLEDGE_FAILED)

    return PledgeCreated(chat_room_id=room.id)
