import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


class Base(DeclarativeBase):
    pass


# Bound to an engine at startup (main.lifespan) or by tests
SessionLocal = sessionmaker(autoflush=False, autocommit=False, future=True)


def make_engine(url: Optional[str] = None, **kwargs) -> Engine:
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL env var not set")
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, future=True, **kwargs)


def get_db():
    """FastAPI dependency yielding a session; read-only callers need no commit."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
