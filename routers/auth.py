import logging
from typing import Annotated, Optional

from db import SessionDep
from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from itsdangerous import BadData, URLSafeTimedSerializer
from models import Profile, Role
from passlib.context import CryptContext
from pydantic import ValidationError
from schemas import LoginData, ProfileRead, UserCreate
from sqlmodel import select

router = APIRouter(tags=["auth"])
logger = logging.getLogger("givehaven.auth")

SESSION_COOKIE = "session"

# Where each role lands after a form login
DASHBOARDS = {
    Role.donor: "/needs",
    Role.home: "/homes/me",
    Role.admin: "/admin/stats",
}


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _serializer(request: Request) -> URLSafeTimedSerializer:
    return request.app.state.serializer


def create_session_token(serializer: URLSafeTimedSerializer, user_id: int, role: str) -> str:
    """
    Store user_id + role in the signed token.
    Example data:
        {"user_id": 3, "role": "donor"}
    """
    return serializer.dumps({"user_id": user_id, "role": role})


def verify_session_token(
    serializer: URLSafeTimedSerializer, token: str, max_age_seconds: int
) -> Optional[dict]:
    """
    Returns dict {'user_id': ..., 'role': ...} if valid,
    or None if token is invalid/expired.
    """
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadData:
        return None


def _resolve_session(request: Request, session: SessionDep, token: str) -> Optional[dict]:
    settings = request.app.state.settings
    data = verify_session_token(_serializer(request), token, settings.session_max_age)
    if not data:
        return None
    user = session.get(Profile, data["user_id"])
    if user is None or user.role.value != data["role"]:
        return None
    return {"user": user, "role": user.role.value}


def get_current_user_and_role(
    request: Request,
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> dict:
    """
    Reads the 'session' cookie, verifies the token,
    looks up the profile, and returns {"user": Profile, "role": str}.
    Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    current = _resolve_session(request, session, session_token)
    if current is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return current


CurrentUserRoleDep = Annotated[dict, Depends(get_current_user_and_role)]


def get_optional_user_and_role(
    request: Request,
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[dict]:
    """
    Like get_current_user_and_role, but returns None instead of raising 401.
    """
    if session_token is None:
        return None
    return _resolve_session(request, session, session_token)


OptionalUserRoleDep = Annotated[Optional[dict],
                                Depends(get_optional_user_and_role)]


def ensure_role(role: str, *allowed: Role) -> None:
    if role not in {r.value for r in allowed}:
        names = " or ".join(f"{r.value}s" for r in allowed)
        raise HTTPException(status_code=403, detail=f"Only {names} can do this.")


def _set_session_cookie(request: Request, response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=request.app.state.settings.session_max_age,
    )


async def _read_payload(request: Request) -> tuple:
    """Return (data, is_json) for either a JSON or a form body."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        return await request.json(), True
    form = await request.form()
    data = {k: v for k, v in form.items() if isinstance(v, str)}
    return data, False


@router.post("/register")
async def register(request: Request, session: SessionDep):
    """
    Register a new donor or home account with a hashed password.
    Accepts either JSON or form-data.
    """
    data, is_json = await _read_payload(request)
    try:
        user_in = UserCreate(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise HTTPException(status_code=400, detail=f"{field}: {first['msg']}") from exc

    email = user_in.email.lower()
    existing = session.exec(select(Profile).where(Profile.email == email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    settings = request.app.state.settings
    role = Role.admin if email in settings.admin_emails else Role(user_in.role)

    user = Profile(
        email=email,
        display_name=user_in.display_name,
        password_hash=hash_password(user_in.password),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(status_code=500, detail="User was not created successfully")

    logger.info("Registered profile %s as %s", user.id, role.value)
    token = create_session_token(_serializer(request), user.id, role.value)

    if is_json:
        resp = JSONResponse({"message": "Registration successful", "role": role.value})
    else:
        resp = RedirectResponse(url=DASHBOARDS[role], status_code=303)
    _set_session_cookie(request, resp, token)
    return resp


@router.post("/login")
async def login(request: Request, session: SessionDep):
    """
    Log in with email + password and set a signed session cookie.
    Accepts either JSON or form-data.
    """
    data, is_json = await _read_payload(request)
    try:
        payload = LoginData(**data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="All fields are required") from exc

    user = session.exec(
        select(Profile).where(Profile.email == payload.email.lower())
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid email or password")

    if user.id is None:
        raise HTTPException(status_code=500, detail="User has no ID in database")

    token = create_session_token(_serializer(request), user.id, user.role.value)

    if is_json:
        resp = JSONResponse({"message": "Login successful", "role": user.role.value})
    else:
        resp = RedirectResponse(url=DASHBOARDS[user.role], status_code=303)
    _set_session_cookie(request, resp, token)
    return resp


@router.post("/logout")
def logout():
    """
    Clear the session cookie and redirect to home.
    """
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=ProfileRead)
def read_me(current: CurrentUserRoleDep):
    """
    Get info about the currently logged-in profile.
    """
    return current["user"]
