# barberqueue/db.py

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session

from .config import shop_settings
from .errors import DataAccessError, SchedulingError, SlotConflict

logger = logging.getLogger(__name__)

DATABASE_URL = shop_settings.database_url

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}  # required for SQLite + FastAPI

# Engine = connection to the database
engine = create_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)


def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session


@contextmanager
def transaction(session: Session):
    """Commit on success; roll back and surface a domain error on any failure.

    IntegrityError means a concurrent writer won a uniqueness race and becomes
    SlotConflict. Other store failures become DataAccessError (fail closed).
    """
    try:
        yield session
        session.commit()
    except SchedulingError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.info(f"Integrity conflict, transaction rolled back: {e.orig}")
        raise SlotConflict("The selected time slot is no longer available") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error, transaction rolled back: {e}")
        raise DataAccessError("Scheduling store is temporarily unavailable") from e
