from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL, STORE_TIMEOUT_SECONDS


def _connect_args(url: str, timeout: float) -> dict:
    # Every store call must give up after `timeout` instead of hanging.
    if url.startswith("sqlite"):
        return {"timeout": timeout, "check_same_thread": False}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return {}


def make_engine(url: str = DATABASE_URL, timeout: float = STORE_TIMEOUT_SECONDS) -> Engine:
    return create_engine(url, connect_args=_connect_args(url, timeout), pool_pre_ping=True)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
