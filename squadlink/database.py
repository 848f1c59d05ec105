"""
Database tables and engine configuration for squadlink.

Three tables matter to the relationship core:

* ``profiles`` - mirror of the profile service's display data plus the
  ``last_seen`` presence heartbeat.
* ``friendships`` - the edge table. One row per unordered pair of users,
  enforced by a unique constraint over ``(user_low_id, user_high_id)``.
* ``cancelled_friendships`` - ids of withdrawn requests, so a stale id is
  told apart from one that was never issued.

Profile ids are opaque strings owned by the profile service, so the edge
table stores them without foreign keys.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, Column, DateTime, Index, String, Text, UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger('squadlink.database')

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class ProfileRecord(Base):
    """Profile display data and presence heartbeat."""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True, default=new_id)
    username = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    bio = Column(Text, nullable=True)
    last_seen = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class FriendshipRecord(Base):
    """A friendship edge between two profiles."""
    __tablename__ = "friendships"

    id = Column(String(64), primary_key=True, default=new_id)
    # Canonical pair (always low < high)
    user_low_id = Column(String(64), nullable=False)
    user_high_id = Column(String(64), nullable=False)
    requester_id = Column(String(64), nullable=False)
    recipient_id = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default='pending')
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_friendship_pair"),
        CheckConstraint("user_low_id < user_high_id", name="ck_friendship_order"),
        CheckConstraint("requester_id <> recipient_id", name="ck_friendship_no_self"),
        CheckConstraint("status IN ('pending', 'accepted', 'declined')",
                        name="ck_friendship_status"),
        Index("ix_friendships_requester", "requester_id", "status"),
        Index("ix_friendships_recipient", "recipient_id", "status"),
    )

    def __repr__(self):
        return (f"<FriendshipRecord(id={self.id}, {self.requester_id} -> "
                f"{self.recipient_id}, status={self.status})>")


class CancelledFriendshipRecord(Base):
    """Id of a pending edge its requester withdrew.

    The edge row itself is deleted so the pair is free again; this row lets
    a late accept/decline/cancel on the old id report a conflict instead of
    an unknown id.
    """
    __tablename__ = "cancelled_friendships"

    id = Column(String(64), primary_key=True)
    requester_id = Column(String(64), nullable=False)
    cancelled_at = Column(DateTime, nullable=False, default=utcnow)


def create_db_engine(database_url: str, echo: bool = False):
    """Create an engine for *database_url*.

    SQLite gets the connection arguments needed for multi-threaded use; an
    in-memory SQLite database is pinned to a single shared connection so
    every session sees the same tables.
    """
    if database_url.startswith('sqlite'):
        connect_args = {"check_same_thread": False, "timeout": 30}
        if ':memory:' in database_url or database_url in ('sqlite://', 'sqlite:///'):
            return create_engine(database_url, echo=echo,
                                 connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, echo=echo, connect_args=connect_args)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False,
                        expire_on_commit=False, bind=engine)


def init_db(engine) -> bool:
    """Create all tables that do not exist yet."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready on %s", engine.url.render_as_string(hide_password=True))
        return True
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        return False


def get_db(session_factory):
    """Yield a session from *session_factory* and close it afterwards."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
