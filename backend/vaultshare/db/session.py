from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def make_engine(database_uri: str) -> Engine:
    # SQLite specific configuration for multi-threading
    connect_args = {"check_same_thread": False} if database_uri.startswith("sqlite") else {}
    return create_engine(
        database_uri,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
