from typing import Optional

from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from itsdangerous import URLSafeTimedSerializer
from sqlalchemy.engine import Engine

from config import Settings, load_settings
from db import create_db_and_tables, make_engine
from logging_config import setup_logging
from realtime import RoomBroker
from routers import admin, auth, chat, files, homes, needs, users
from routers.auth import DASHBOARDS, OptionalUserRoleDep
from storage import ObjectStorage


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the application with its collaborators wired explicitly:
    database engine, session serializer, file storage and the chat broker
    all hang off ``app.state``.
    """
    settings = settings or load_settings()
    log = setup_logging(settings.log_level)

    app = FastAPI(title="GiveHaven")
    app.state.settings = settings
    app.state.engine = engine if engine is not None else make_engine(settings)
    app.state.serializer = URLSafeTimedSerializer(settings.secret_key, salt="session")
    app.state.storage = ObjectStorage(
        settings.storage_root, settings.secret_key, settings.signed_url_ttl
    )
    app.state.broker = RoomBroker()

    @app.on_event("startup")
    def on_startup() -> None:
        create_db_and_tables(app.state.engine)
        log.info("GiveHaven started")

    @app.get("/")
    def read_root(current: OptionalUserRoleDep):
        # If logged in, redirect to the role's dashboard
        if current:
            return RedirectResponse(url=DASHBOARDS[current["user"].role], status_code=303)
        return {"name": "GiveHaven", "explore": "/needs", "login": "/login", "register": "/register"}

    app.include_router(auth.router)
    app.include_router(users.router, prefix="/users")
    app.include_router(homes.router, prefix="/homes")
    app.include_router(needs.router, prefix="/needs")
    app.include_router(chat.router, prefix="/chat")
    app.include_router(admin.router, prefix="/admin")
    app.include_router(files.router, prefix="/files")

    return app


app = create_app()
