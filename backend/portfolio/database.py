from pathlib import Path

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .context import AppContext, get_ctx


def create_db_engine(database_url: str) -> Engine:
    """Create the engine; SQLite gets cross-thread access, a busy timeout and FK checks."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        Path(database_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)

    # check_same_thread=False: FastAPI runs sync handlers in a thread pool
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


# Dependency for FastAPI
def get_db(ctx: AppContext = Depends(get_ctx)):
    db: Session = ctx.session_factory()
    try:
        yield db
    finally:
        db.close()
