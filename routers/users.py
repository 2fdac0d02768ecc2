# routers/users.py
from fastapi import APIRouter, HTTPException

from db import SessionDep
from models import Profile, utc_now
from schemas import ProfileRead, ProfileUpdate, PublicProfile
from .auth import CurrentUserRoleDep

router = APIRouter(tags=["users"])


@router.patch("/me", response_model=ProfileRead)
def update_own_profile(
    update: ProfileUpdate,
    session: SessionDep,
    current: CurrentUserRoleDep,
):
    """
    Change the caller's display name or avatar.
    """
    user = current["user"]
    for field, value in update.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    user.updated_at = utc_now()

    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.get("/{user_id}", response_model=PublicProfile)
def get_user(user_id: int, session: SessionDep):
    """
    Public view of a single profile.
    """
    user = session.get(Profile, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
