import logging
from contextlib import contextmanager
from typing import Generator, Iterable

from sqlalchemy import create_engine, event, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config import settings
from core.errors import StoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


# Configure engine based on database type
if settings.DATABASE_URL.startswith("sqlite"):
    # For SQLite, use StaticPool for in-memory databases and enable foreign keys
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.SQLALCHEMY_ECHO,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool if ":memory:" in settings.DATABASE_URL else None,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    # Every statement is bounded so a stuck row lock surfaces as an error
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.SQLALCHEMY_ECHO,
        future=True,
        pool_pre_ping=True,
        pool_timeout=10,
        connect_args={"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    )

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db() -> None:
    """Create tables for dev/test. Production schemas are managed out of band."""
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session() -> Generator:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def transaction(db, stage: str, indeterminate: bool = False) -> Generator:
    """Commit the work done inside the block, or roll back and raise StoreError.

    ``stage`` names the step for the caller and the logs. ``indeterminate``
    marks failures after which earlier committed steps are left in place.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Store failure during %s: %s", stage, exc)
        raise StoreError(f"Store failure during {stage}", stage=stage, indeterminate=indeterminate) from exc
    except Exception:
        db.rollback()
        raise


def guarded_update(db, model, row_id: str, expected_statuses: Iterable[str], **values) -> bool:
    """Single-row UPDATE that only applies while the row is in one of ``expected_statuses``.

    Returns True when this call changed the row. Two racing callers can never
    both see True for the same transition.
    """
    expected = [getattr(s, "value", s) for s in expected_statuses]
    values = {k: getattr(v, "value", v) for k, v in values.items()}
    result = db.execute(
        update(model)
        .where(model.id == row_id, model.status.in_(expected))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    changed = result.rowcount == 1
    if changed:
        # Loaded copies of the row are stale now
        instance = db.identity_map.get(db.identity_key(model, row_id))
        if instance is not None:
            db.expire(instance)
    return changed
