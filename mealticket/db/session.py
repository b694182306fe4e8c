import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from mealticket.core.config import settings
from mealticket.domain.errors import DomainError, InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_engine(url: str, **kwargs):
    # SQLite connections are shared across threadpool workers by FastAPI
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return create_engine(url, connect_args=connect_args, **kwargs)
    return create_engine(url, pool_pre_ping=True, **kwargs)


# Create engine
# For PostgreSQL, we might need to adjust pool_size and max_overflow in production
engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(db: Session, work: Callable[[], T], retries: int | None = None) -> T:
    """
    Run `work` as one atomic unit: commit if it returns, roll back if it raises.

    Transient contention (serialization failures, deadlocks, a locked SQLite
    file) is retried; callers only ever see success or a typed error.
    Integrity errors propagate untouched so the caller can map them.
    """
    attempts = (settings.TX_MAX_RETRIES if retries is None else retries) + 1
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except DomainError:
            db.rollback()
            raise
        except IntegrityError:
            db.rollback()
            raise
        except OperationalError as exc:
            db.rollback()
            if attempt == attempts:
                logger.error("Transaction failed after %d attempt(s): %s", attempt, exc)
                raise InternalError("Storage is busy, please retry") from exc
            logger.warning("Transient storage conflict (attempt %d/%d): %s", attempt, attempts, exc)
            time.sleep(0.05 * attempt)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Unexpected storage failure")
            raise InternalError() from exc
        except Exception:
            db.rollback()
            raise
    raise InternalError()
