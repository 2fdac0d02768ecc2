"""
Turning a donor's intent into a pledge.

A pledge is one transaction: bump the need's fulfilled quantity with a
conditional UPDATE, flip it to pending_pickup when it fills up, open the
chat room and write the audit row. The UPDATE only matches while the
need is active and has room for the requested quantity, so when two
donors race for the last units the first commit wins and the other gets
zero matched rows.
"""
import logging

from sqlalchemy import update
from sqlmodel import Session

from activity import log_activity
from lifecycle import PledgeRejected, pledge_outcome
from models import (
    AccountStatus,
    ActivityAction,
    ChatRoom,
    EntityType,
    Home,
    Need,
    NeedStatus,
    utc_now,
)

logger = logging.getLogger("givehaven.pledges")


def create_pledge(session: Session, need_id: int, donor_id: int, quantity: int) -> ChatRoom:
    need = session.get(Need, need_id)
    if need is None:
        raise PledgeRejected(f"need {need_id} does not exist")

    home = session.get(Home, need.home_id)
    if home is None or not home.verified or home.account_status != AccountStatus.active:
        raise PledgeRejected(f"home of need {need_id} is not accepting pledges")

    # Fail fast on the snapshot; the UPDATE below is what actually guards capacity.
    pledge_outcome(need, quantity)

    try:
        claimed = session.execute(
            update(Need)
            .where(
                Need.id == need_id,
                Need.status == NeedStatus.active,
                Need.fulfilled_quantity + quantity <= Need.quantity,
            )
            .values(
                fulfilled_quantity=Need.fulfilled_quantity + quantity,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise PledgeRejected(f"need {need_id} was claimed concurrently")

        session.execute(
            update(Need)
            .where(
                Need.id == need_id,
                Need.status == NeedStatus.active,
                Need.fulfilled_quantity >= Need.quantity,
            )
            .values(status=NeedStatus.pending_pickup)
            .execution_options(synchronize_session=False)
        )

        room = ChatRoom(
            need_id=need_id,
            donor_id=donor_id,
            home_id=need.home_id,
            quantity=quantity,
        )
        session.add(room)
        session.flush()

        log_activity(
            session,
            donor_id,
            ActivityAction.pledge,
            EntityType.need,
            need_id,
            need_title=need.title,
            home_name=home.name,
            quantity=quantity,
            room_id=room.id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(room)
    logger.info(
        "Donor %s pledged %s on need %s (room %s)", donor_id, quantity, need_id, room.id
    )
    return room
