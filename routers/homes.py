import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import func
from sqlmodel import Session, select
from starlette.datastructures import UploadFile

from db import SessionDep
from inbox import home_for_profile, pending_pledges_count, unread_count
from models import (
    AccountStatus,
    Home,
    Need,
    NeedStatus,
    Profile,
    Role,
    VerificationStatus,
    utc_now,
)
from schemas import HomeRead, HomeStats, HomeSummary, HomeUpdate, NeedRead, PublicHomeProfile
from storage import StorageError, make_key
from .auth import CurrentUserRoleDep, ensure_role

router = APIRouter(tags=["homes"])
logger = logging.getLogger("givehaven.homes")


def get_my_home(session: Session, user: Profile) -> Home:
    home = home_for_profile(session, user.id)
    if home is None:
        raise HTTPException(status_code=404, detail="Home not found")
    return home


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or utc_now()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _form_text(form, field: str) -> str:
    value = form.get(field)
    return value.strip() if isinstance(value, str) else ""


async def _read_upload(form, field: str) -> Optional[UploadFile]:
    value = form.get(field)
    if isinstance(value, UploadFile) and value.filename:
        return value
    return None


def _parse_coordinate(raw, label: str) -> Optional[float]:
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{label} must be a number.")


@router.post("/", response_model=HomeRead, status_code=201)
async def register_home(request: Request, session: SessionDep, current: CurrentUserRoleDep):
    """
    Register the caller's children's home.

    Multipart form: name, address, story, contact_email, contact_phone,
    latitude, longitude, a required registration_doc and an optional logo.
    """
    user = current["user"]
    ensure_role(current["role"], Role.home)

    if home_for_profile(session, user.id) is not None:
        raise HTTPException(status_code=400, detail="You have already registered a home.")

    form = await request.form()
    name = _form_text(form, "name")
    address = _form_text(form, "address")

    if not name:
        raise HTTPException(status_code=400, detail="Please enter your home's name")
    if not address:
        raise HTTPException(status_code=400, detail="Please enter your address")

    doc = await _read_upload(form, "registration_doc")
    if doc is None:
        raise HTTPException(status_code=400, detail="Please upload a verification document")

    storage = request.app.state.storage

    try:
        doc_path = storage.upload(
            "documents", make_key(f"registrations/{user.id}", doc.filename), await doc.read()
        )
    except StorageError as exc:
        logger.error("Registration document upload failed for profile %s: %s", user.id, exc)
        raise HTTPException(status_code=400, detail="Verification document upload failed")

    logo_url = None
    logo = await _read_upload(form, "logo")
    if logo is not None:
        try:
            logo_url = storage.upload("images", make_key("logos", logo.filename), await logo.read())
        except StorageError as exc:
            # Continue without logo
            logger.warning("Logo upload failed for profile %s: %s", user.id, exc)

    home = Home(
        profile_id=user.id,
        name=name,
        address=address,
        story=_form_text(form, "story") or None,
        contact_email=_form_text(form, "contact_email") or None,
        contact_phone=_form_text(form, "contact_phone") or None,
        latitude=_parse_coordinate(_form_text(form, "latitude"), "Latitude"),
        longitude=_parse_coordinate(_form_text(form, "longitude"), "Longitude"),
        logo_url=logo_url,
        registration_doc_path=doc_path,
        verification_status=VerificationStatus.received,
        verified=False,
    )
    session.add(home)
    session.commit()
    session.refresh(home)
    logger.info("Home %s registered by profile %s", home.id, user.id)
    return home


@router.get("/me", response_model=HomeRead)
def read_my_home(session: SessionDep, current: CurrentUserRoleDep):
    ensure_role(current["role"], Role.home)
    return get_my_home(session, current["user"])


@router.patch("/me", response_model=HomeRead)
def update_my_home(update: HomeUpdate, session: SessionDep, current: CurrentUserRoleDep):
    """Edit profile fields. Verification and account status are admin-only."""
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])

    for field, value in update.model_dump(exclude_unset=True).items():
        setattr(home, field, value)
    home.updated_at = utc_now()

    session.add(home)
    session.commit()
    session.refresh(home)
    return home


async def _replace_image(
    request: Request, session: SessionDep, current: dict, prefix: str, attr: str
) -> Home:
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])

    form = await request.form()
    upload = await _read_upload(form, "file")
    if upload is None:
        raise HTTPException(status_code=400, detail="Please choose a file")

    try:
        url = request.app.state.storage.upload(
            "images", make_key(prefix, upload.filename), await upload.read()
        )
    except StorageError as exc:
        logger.warning("Upload to %s failed for home %s: %s", prefix, home.id, exc)
        raise HTTPException(status_code=400, detail="Failed to upload photo")

    setattr(home, attr, url)
    home.updated_at = utc_now()
    session.add(home)
    session.commit()
    session.refresh(home)
    return home


@router.post("/me/logo", response_model=HomeRead)
async def upload_logo(request: Request, session: SessionDep, current: CurrentUserRoleDep):
    return await _replace_image(request, session, current, "logos", "logo_url")


@router.post("/me/cover", response_model=HomeRead)
async def upload_cover(request: Request, session: SessionDep, current: CurrentUserRoleDep):
    return await _replace_image(request, session, current, "covers", "cover_image_url")


@router.post("/me/registration-doc", response_model=HomeRead)
async def resubmit_registration_doc(
    request: Request, session: SessionDep, current: CurrentUserRoleDep
):
    """Replace the verification document, e.g. after a request for more documents."""
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])

    form = await request.form()
    doc = await _read_upload(form, "registration_doc")
    if doc is None:
        raise HTTPException(status_code=400, detail="Please upload a verification document")

    try:
        home.registration_doc_path = request.app.state.storage.upload(
            "documents",
            make_key(f"registrations/{home.profile_id}", doc.filename),
            await doc.read(),
        )
    except StorageError as exc:
        logger.error("Document re-upload failed for home %s: %s", home.id, exc)
        raise HTTPException(status_code=400, detail="Verification document upload failed")

    home.updated_at = utc_now()
    session.add(home)
    session.commit()
    session.refresh(home)
    return home


@router.get("/me/stats", response_model=HomeStats)
def my_home_stats(session: SessionDep, current: CurrentUserRoleDep):
    ensure_role(current["role"], Role.home)
    user = current["user"]
    home = get_my_home(session, user)

    def count_needs(*conditions) -> int:
        stmt = select(func.count(Need.id)).where(Need.home_id == home.id, *conditions)
        return session.exec(stmt).one()

    return HomeStats(
        active_needs=count_needs(Need.status == NeedStatus.active),
        pending_pickup=count_needs(Need.status == NeedStatus.pending_pickup),
        completed_this_month=count_needs(
            Need.status == NeedStatus.completed,
            Need.completed_at >= month_start(),
        ),
        unread_messages=unread_count(session, user),
    )


@router.get("/me/pending-pledges")
def my_pending_pledges(session: SessionDep, current: CurrentUserRoleDep):
    ensure_role(current["role"], Role.home)
    home = get_my_home(session, current["user"])
    return {"count": pending_pledges_count(session, home.id)}


@router.get("/{home_id}", response_model=PublicHomeProfile)
def public_home_profile(home_id: int, session: SessionDep):
    """Public page of an approved home with its open needs."""
    home = session.get(Home, home_id)
    if home is None or not home.verified or home.account_status != AccountStatus.active:
        raise HTTPException(status_code=404, detail="Home not found")

    needs = session.exec(
        select(Need)
        .where(Need.home_id == home.id, Need.status == NeedStatus.active)
        .order_by(Need.created_at.desc())
    ).all()

    return PublicHomeProfile(
        home=HomeSummary.model_validate(home),
        story=home.story,
        cover_image_url=home.cover_image_url,
        needs=[NeedRead.model_validate(n) for n in needs],
    )
