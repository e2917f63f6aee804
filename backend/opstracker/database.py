"""Database engine, session factory and transaction helpers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from .domain_errors import DomainError, InternalError

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent

engine = create_engine(
    settings.DATABASE_URL,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session, *, operation: str, on_conflict: DomainError | None = None):
    """Commit the enclosed unit of work, or roll all of it back.

    Domain errors are re-raised unchanged after rollback. A unique-constraint
    violation is surfaced as ``on_conflict`` when given; any other persistence
    error is logged and surfaced as InternalError.
    """
    try:
        yield db
        db.commit()
    except DomainError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if on_conflict is not None:
            logger.info("%s rejected by a uniqueness constraint", operation)
            raise on_conflict from exc
        logger.exception("%s failed; transaction rolled back", operation)
        raise InternalError(f"{operation} failed") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed; transaction rolled back", operation)
        raise InternalError(f"{operation} failed") from exc


def run_migrations() -> None:
    """Upgrade the schema to the latest alembic revision (idempotent)."""
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    # configparser interpolation: escape literal percent signs in credentials.
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL.replace("%", "%%"))
    logger.info("Applying database migrations")
    command.upgrade(cfg, "head")
