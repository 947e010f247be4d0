"""Database engine and session factory for the backing document store."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from posengine.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, handling SQLite's threading rules specially."""
    connect_args = {}
    pool_config = {}

    if database_url.startswith("sqlite"):
        # Store calls run in worker threads
        connect_args = {"check_same_thread": False}
        pool_config = {"pool_pre_ping": True}
    else:
        pool_config = {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    return create_engine(database_url, connect_args=connect_args, echo=echo, **pool_config)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
