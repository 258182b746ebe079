"""Database configuration and initialization."""
import os
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
from irrigation_engine.config.config import DATABASE_URL, DATABASE_PATH

logger = logging.getLogger(__name__)

# Ensure database directory exists for the default SQLite file
if DATABASE_URL.startswith('sqlite:///') and DATABASE_URL.endswith(DATABASE_PATH):
    os.makedirs(os.path.dirname(DATABASE_PATH), exist_ok=True)

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, echo=False)

# Create session factory
SessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False, bind=engine))

# Base class for models
Base = declarative_base()


def init_db(bind=None):
    """Initialize database by creating all tables."""
    from irrigation_engine.models import StateEntry, CycleLog, SystemLog  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ready")


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
