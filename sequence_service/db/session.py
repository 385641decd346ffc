from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from sequence_service.core.config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Writers queue on the database lock instead of failing immediately.
        return {"check_same_thread": False, "timeout": 30}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
