from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.types import TypeDecorator
from app.config import settings


# ── Engine ────────────────────────────────────────────────────────────────────
# pool_pre_ping=True: SQLAlchemy will test every connection before using it.
# SQLite (used by the test suite) has no pool sizing and needs cross-thread access.
if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

# ── Session Factory ───────────────────────────────────────────────────────────
SessionLocal = sessionmaker(
    autocommit=False,   # services commit explicitly, once per unit of work
    autoflush=False,
    bind=engine,
)


# ── Declarative Base ──────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that always round-trips as an aware UTC datetime.
    SQLite drops tzinfo on read; Postgres keeps it. Either way callers get UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ── Dependencies ──────────────────────────────────────────────────────────────
def get_db():
    """
    FastAPI dependency that yields a DB session and guarantees cleanup.
    Use as: db: Session = Depends(get_db)
    Uncommitted work is rolled back when the session closes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Session factory for work that outlives the request (background email delivery).
    The request-scoped session is already closed by the time background tasks run.
    """
    return SessionLocal
