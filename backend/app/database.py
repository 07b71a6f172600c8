import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.config import get_settings
from backend.app.errors import ConflictError, LedgerError, StoreError

logger = logging.getLogger(__name__)

settings = get_settings()
DATABASE_URL = settings.database_url

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

# Create sessionmaker
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create tables in the database
def create_tables():
    from backend.app.models.models import Base
    Base.metadata.create_all(bind=engine)

def drop_tables():
    from backend.app.models.models import Base
    Base.metadata.drop_all(bind=engine)

# Dependency to get the database session
def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def unit_of_work(db: Session):
    """
    Run a block of ledger writes as one database transaction.

    Commits when the block finishes, rolls back on any exception. Store
    failures surface as StoreError, a lost optimistic-version race as
    ConflictError; ledger errors raised inside the block pass through
    unchanged after the rollback.
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent modification detected: %s", exc)
        raise ConflictError("Transaction was modified concurrently, retry the request") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Store failure, unit of work rolled back")
        raise StoreError(f"Database operation failed: {exc.__class__.__name__}") from exc
    except Exception:
        db.rollback()
        raise
