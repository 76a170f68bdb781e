"""
Database Connection and Operations

Handles the database connection and the read/write helpers used by routes
and the seeding script.
"""

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from land_trainer.config import settings
from land_trainer.db.models import Base, Parcel, Persona, SessionStatus, User

logger = logging.getLogger(__name__)


def build_engine(database_url: str):
    """
    Create the SQLAlchemy engine.

    SQLite gets cross-thread connections (routes and feedback workers share
    the engine), a lock timeout and WAL mode.
    """
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {'check_same_thread': False, 'timeout': 30.0} if is_sqlite else {}

    new_engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
        pool_recycle=3600,
    )

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db():
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized at %s", engine.url)


@contextmanager
def get_db(session_factory=None) -> Session:
    """
    Get database session with automatic commit/rollback and cleanup.

    Usage:
        with get_db() as db:
            persona = db.query(Persona).first()
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# USER OPERATIONS
# ============================================================================

def get_or_create_user(external_id: str, email_address: Optional[str] = None) -> Dict:
    """Find the user for an auth identity, creating it on first sight."""
    with get_db() as db:
        user = db.query(User).filter(User.external_id == external_id).first()
        if not user:
            user = User(
                external_id=external_id,
                email_address=email_address,
                sessions_remaining=settings.DEFAULT_SESSIONS_REMAINING,
            )
            db.add(user)
            db.flush()
            logger.info("Created user for identity %s", external_id)
        return user.to_dict()


def get_user_profile(user_id: str) -> Optional[Dict]:
    """User fields plus completed-session count and best score/grade."""
    from land_trainer.grades import best_grade

    with get_db() as db:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return None

        scores = [
            s.feedback_score
            for s in user.training_sessions
            if s.status == SessionStatus.COMPLETED.value
        ]
        profile = user.to_dict()
        profile.update({
            'sessions_completed': len(scores),
            'best_score': max([s for s in scores if s is not None], default=None),
            'best_grade': best_grade(scores),
        })
        return profile


# ============================================================================
# PERSONA / PARCEL OPERATIONS
# ============================================================================

def get_all_personas() -> List[Dict]:
    with get_db() as db:
        return [p.to_dict() for p in db.query(Persona).order_by(Persona.name).all()]


def get_all_parcels() -> List[Dict]:
    with get_db() as db:
        return [p.to_dict() for p in db.query(Parcel).order_by(Parcel.parcel_number).all()]

