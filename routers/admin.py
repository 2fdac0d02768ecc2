import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from sqlalchemy import func
from sqlmodel import Session, select

from activity import log_activity
from db import SessionDep
from lifecycle import (
    TERMINAL_VERIFICATION,
    VERIFICATION_DESCRIPTIONS,
    VERIFICATION_LABELS,
    TransitionRejected,
    ensure_deletable,
    is_verified,
    transition_verification,
)
from models import (
    ActivityAction,
    ActivityLog,
    ChatRoom,
    EntityType,
    Home,
    Need,
    NeedCategory,
    NeedStatus,
    Profile,
    Role,
    VerificationStatus,
    utc_now,
)
from reports import completed_needs_csv, completions_by_day, report_filename
from schemas import (
    AccountStatusUpdate,
    ActivityLogRead,
    AdminHomeRead,
    AdminNeedRead,
    AdminStats,
    CategoryCount,
    CompletionPoint,
    DonorStats,
    HomeRead,
    NeedRead,
    VerificationUpdate,
)
from .auth import CurrentUserRoleDep, ensure_role
from .homes import month_start
from .needs import delete_unpledged

router = APIRouter(tags=["admin"])
logger = logging.getLogger("givehaven.admin")


def _ensure_admin(current: dict) -> Profile:
    ensure_role(current["role"], Role.admin)
    return current["user"]


def _load_home(session: Session, home_id: int) -> Home:
    home = session.get(Home, home_id)
    if home is None:
        raise HTTPException(status_code=404, detail="Home not found")
    return home


def _admin_home(request: Request, home: Home) -> AdminHomeRead:
    doc_url = None
    if home.registration_doc_path:
        doc_url = request.app.state.storage.signed_url(home.registration_doc_path)
    return AdminHomeRead(
        **HomeRead.model_validate(home).model_dump(),
        status_label=VERIFICATION_LABELS[home.verification_status],
        status_description=VERIFICATION_DESCRIPTIONS[home.verification_status],
        registration_doc_url=doc_url,
    )


def _day_bounds(start: Optional[date], end: Optional[date]):
    """Inclusive calendar-day range as [start 00:00, end+1 00:00)."""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc) if end else None
    return lower, upper


@router.get("/stats", response_model=AdminStats)
def admin_stats(session: SessionDep, current: CurrentUserRoleDep):
    _ensure_admin(current)

    def count(model, *conditions) -> int:
        return session.exec(select(func.count(model.id)).where(*conditions)).one()

    return AdminStats(
        total_homes=count(Home),
        verified_homes=count(Home, Home.verified == True),  # noqa: E712
        pending_homes=count(Home, Home.verification_status.not_in(list(TERMINAL_VERIFICATION))),
        active_needs=count(Need, Need.status == NeedStatus.active),
        pending_pickup=count(Need, Need.status == NeedStatus.pending_pickup),
        completed_this_month=count(
            Need,
            Need.status == NeedStatus.completed,
            Need.completed_at >= month_start(),
        ),
        total_donors=count(Profile, Profile.role == Role.donor),
    )


@router.get("/homes", response_model=List[AdminHomeRead])
def list_homes(
    request: Request,
    session: SessionDep,
    current: CurrentUserRoleDep,
    pending: bool = False,
):
    """All homes, newest first; ``pending=true`` keeps only those still under review."""
    _ensure_admin(current)
    query = select(Home)
    if pending:
        query = query.where(Home.verification_status.not_in(list(TERMINAL_VERIFICATION)))
    homes = session.exec(query.order_by(Home.created_at.desc(), Home.id.desc())).all()
    return [_admin_home(request, home) for home in homes]


@router.get("/homes/{home_id}", response_model=AdminHomeRead)
def get_home(home_id: int, request: Request, session: SessionDep, current: CurrentUserRoleDep):
    _ensure_admin(current)
    return _admin_home(request, _load_home(session, home_id))


@router.post("/homes/{home_id}/verification", response_model=AdminHomeRead)
def update_verification(
    home_id: int,
    update: VerificationUpdate,
    request: Request,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    """
    Move a home through the review workflow.

    Writes the new status together with the derived ``verified`` flag and
    one activity log row. Concurrent admins are not coordinated; the last
    write wins.
    """
    admin = _ensure_admin(current)
    home = _load_home(session, home_id)
    previous = home.verification_status

    try:
        new_status = transition_verification(previous, update.status, update.reason)
    except TransitionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    home.verification_status = new_status
    home.verified = is_verified(new_status)
    home.updated_at = utc_now()
    session.add(home)

    metadata = {
        "home_name": home.name,
        "previous_status": previous.value,
        "new_status": new_status.value,
        "previous_label": VERIFICATION_LABELS[previous],
        "status_label": VERIFICATION_LABELS[new_status],
    }
    if new_status == VerificationStatus.approved:
        action = ActivityAction.verify
    elif new_status == VerificationStatus.rejected:
        action = ActivityAction.reject
        metadata["rejection_reason"] = update.reason.strip()
    else:
        action = ActivityAction.pledge

    log_activity(session, admin.id, action, EntityType.home, home.id, **metadata)
    session.commit()
    session.refresh(home)

    logger.info(
        "Admin %s moved home %s from %s to %s", admin.id, home.id, previous.value, new_status.value
    )
    return _admin_home(request, home)


@router.post("/homes/{home_id}/account-status", response_model=AdminHomeRead)
def update_account_status(
    home_id: int,
    update: AccountStatusUpdate,
    request: Request,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    admin = _ensure_admin(current)
    home = _load_home(session, home_id)
    previous = home.account_status

    if previous == update.status:
        raise HTTPException(status_code=409, detail=f"Account is already {previous.value}")

    home.account_status = update.status
    home.updated_at = utc_now()
    session.add(home)
    log_activity(
        session,
        admin.id,
        ActivityAction.account_status,
        EntityType.home,
        home.id,
        home_name=home.name,
        previous_status=previous.value,
        new_status=update.status.value,
    )
    session.commit()
    session.refresh(home)
    logger.info("Admin %s set home %s account to %s", admin.id, home.id, update.status.value)
    return _admin_home(request, home)


@router.get("/needs", response_model=List[AdminNeedRead])
def list_needs(
    session: SessionDep,
    current: CurrentUserRoleDep,
    status: Optional[NeedStatus] = None,
    category: Optional[NeedCategory] = None,
):
    _ensure_admin(current)
    query = select(Need, Home.name).join(Home, Home.id == Need.home_id)
    if status is not None:
        query = query.where(Need.status == status)
    if category is not None:
        query = query.where(Need.category == category)

    rows = session.exec(query.order_by(Need.created_at.desc(), Need.id.desc())).all()
    return [
        AdminNeedRead(**NeedRead.model_validate(need).model_dump(), home_name=home_name)
        for need, home_name in rows
    ]


@router.get("/needs/by-category", response_model=List[CategoryCount])
def needs_by_category(session: SessionDep, current: CurrentUserRoleDep):
    _ensure_admin(current)
    rows = session.exec(
        select(Need.category, func.count(Need.id)).group_by(Need.category)
    ).all()
    return [CategoryCount(name=NeedCategory(category).value, value=count) for category, count in rows]


@router.delete("/needs/{need_id}", status_code=204)
def remove_need(need_id: int, session: SessionDep, current: CurrentUserRoleDep):
    """Moderation removal of an active need nobody has pledged to yet."""
    admin = _ensure_admin(current)
    need = session.get(Need, need_id)
    if need is None:
        raise HTTPException(status_code=404, detail="Need not found")

    try:
        ensure_deletable(need)
    except TransitionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    home = session.get(Home, need.home_id)
    need_title = need.title
    delete_unpledged(session, need_id)
    log_activity(
        session,
        admin.id,
        ActivityAction.cancel,
        EntityType.need,
        need_id,
        need_title=need_title,
        home_name=home.name if home else None,
    )
    session.commit()
    logger.info("Admin %s removed need %s", admin.id, need_id)
    return Response(status_code=204)


@router.get("/donors", response_model=List[DonorStats])
def donor_stats(session: SessionDep, current: CurrentUserRoleDep):
    """Per-donor pledge counts, most completed pledges first."""
    _ensure_admin(current)
    donors = session.exec(select(Profile).where(Profile.role == Role.donor)).all()
    rooms = session.exec(
        select(ChatRoom.donor_id, ChatRoom.created_at, Need.status)
        .join(Need, Need.id == ChatRoom.need_id)
    ).all()

    per_donor = {}
    for donor_id, created_at, need_status in rooms:
        entry = per_donor.setdefault(donor_id, {"pledges": 0, "completed": 0, "last": None})
        entry["pledges"] += 1
        if need_status == NeedStatus.completed:
            entry["completed"] += 1
        if entry["last"] is None or created_at > entry["last"]:
            entry["last"] = created_at

    result = []
    for donor in donors:
        entry = per_donor.get(donor.id, {"pledges": 0, "completed": 0, "last": None})
        rate = int(entry["completed"] * 100 / entry["pledges"] + 0.5) if entry["pledges"] else 0
        result.append(
            DonorStats(
                id=donor.id,
                display_name=donor.display_name or "Anonymous Donor",
                total_pledges=entry["pledges"],
                completed_pledges=entry["completed"],
                success_rate=rate,
                last_active=entry["last"],
            )
        )
    result.sort(key=lambda d: d.completed_pledges, reverse=True)
    return result


@router.get("/activity", response_model=List[ActivityLogRead])
def list_activity(
    session: SessionDep,
    current: CurrentUserRoleDep,
    action: Optional[ActivityAction] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: int = 100,
):
    _ensure_admin(current)
    query = select(ActivityLog)
    if action is not None:
        query = query.where(ActivityLog.action == action)
    lower, upper = _day_bounds(start, end)
    if lower is not None:
        query = query.where(ActivityLog.created_at >= lower)
    if upper is not None:
        query = query.where(ActivityLog.created_at < upper)

    limit = max(1, min(limit, 500))
    logs = session.exec(
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    ).all()
    return [
        ActivityLogRead(
            id=log.id,
            user_id=log.user_id,
            action=log.action,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            metadata=log.details or {},
            created_at=log.created_at,
        )
        for log in logs
    ]


@router.get("/activity/completions", response_model=List[CompletionPoint])
def completion_chart(session: SessionDep, current: CurrentUserRoleDep):
    """Needs completed per day over the last 30 days (at most 14 points)."""
    _ensure_admin(current)
    since = utc_now() - timedelta(days=30)
    stamps = session.exec(
        select(Need.completed_at).where(
            Need.status == NeedStatus.completed,
            Need.completed_at >= since,
        )
    ).all()
    return completions_by_day(stamps)


@router.get("/reports/completed-needs.csv")
def export_completed_needs(
    session: SessionDep,
    current: CurrentUserRoleDep,
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    _ensure_admin(current)
    query = (
        select(Need, Home)
        .join(Home, Home.id == Need.home_id, isouter=True)
        .where(Need.status == NeedStatus.completed)
    )
    lower, upper = _day_bounds(start, end)
    if lower is not None:
        query = query.where(Need.completed_at >= lower)
    if upper is not None:
        query = query.where(Need.completed_at < upper)

    rows = session.exec(query.order_by(Need.completed_at, Need.id)).all()
    if not rows:
        raise HTTPException(status_code=404, detail="No data to export for the selected range")

    filename = report_filename(utc_now().date())
    return Response(
        content=completed_needs_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
