from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from config import Settings


def make_engine(settings: Settings) -> Engine:
    """Build the engine for the configured database URL."""
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool
        connect_args["check_same_thread"] = False
    return create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        connect_args=connect_args,
    )


def create_db_and_tables(engine: Engine) -> None:
    """Create all tables in the database if they don't exist."""
    import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Generator[Session, None, None]:
    """Yield a database session bound to the app's engine."""
    with Session(request.app.state.engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]
