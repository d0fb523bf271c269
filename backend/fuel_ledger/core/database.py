"""
Database Configuration
"""
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator, Iterator
import logging

from fuel_ledger.core.config import settings

logger = logging.getLogger(__name__)

# Get the properly formatted database URL
db_url = settings.database_url

# Create engine
engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if "sqlite" in db_url else {},
    echo=settings.DEBUG
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base model
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures the session is closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Wrap one business action: commit when the block finishes,
    roll back everything written so far when it raises.
    """
    try:
        yield db
        db.commit()
    except Exception:
        logger.warning("Rolling back unit of work", exc_info=settings.DEBUG)
        db.rollback()
        raise


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from fuel_ledger.models import (  # noqa: F401
        Bank, Account, Transaction, CashInHand, Depo, Pool, Customer,
        Trip, TripDepo, TripProduct, PolSale, ExpenseCategory, Expense,
        Payment, Recovery, Settlement, VehicleRent, VehicleExpense,
        CashTransfer, AuditLog
    )
    Base.metadata.create_all(bind=bind or engine)
