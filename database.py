#!/usr/bin/env python3
"""
Database models and configuration for SquashBot.
Holds scaffolds, events, participants, registrations and runtime settings.
"""

import datetime
import logging
import os

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Text, UniqueConstraint, create_engine, text)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger('squashbot.database')

# Database URL - SQLite file by default, PostgreSQL in production
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///squashbot.db')

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as naive UTC.

    SQLite drops offsets, so values are normalised to UTC on the way in and
    re-tagged as UTC on the way out.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=datetime.timezone.utc)


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class ScaffoldRow(Base):
    """Weekly recurrence template."""
    __tablename__ = "scaffolds"

    id = Column(String(32), primary_key=True)
    day_of_week = Column(String(3), nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM
    default_courts = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    announcement_deadline = Column(Text, nullable=True)
    owner_id = Column(String(64), nullable=True)
    deleted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow)

    events = relationship("EventRow", back_populates="scaffold")


class EventRow(Base):
    """One concrete session."""
    __tablename__ = "events"
    __table_args__ = (
        # One live event per scaffold slot; soft-deleted rows are ignored.
        Index(
            'uq_events_scaffold_start_live', 'scaffold_id', 'start',
            unique=True,
            sqlite_where=text('deleted_at IS NULL'),
            postgresql_where=text('deleted_at IS NULL'),
        ),
    )

    id = Column(String(32), primary_key=True)
    scaffold_id = Column(String(32), ForeignKey("scaffolds.id"), nullable=True, index=True)
    start = Column(UTCDateTime, nullable=False)
    courts = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default='created')
    message_id = Column(String(64), nullable=True, index=True)
    announcement_deadline = Column(Text, nullable=True)
    owner_id = Column(String(64), nullable=True)
    deleted_at = Column(UTCDateTime, nullable=True)
    reminder_sent_at = Column(UTCDateTime, nullable=True)
    cancellation_checked_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    scaffold = relationship("ScaffoldRow", back_populates="events")
    registrations = relationship("EventParticipantRow", back_populates="event",
                                 cascade="all, delete-orphan")


class ParticipantRow(Base):
    """A chat user who has interacted with an event."""
    __tablename__ = "participants"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), unique=True, index=True, nullable=True)
    username = Column(String(255), index=True, nullable=True)
    display_name = Column(String(255), nullable=False)


class EventParticipantRow(Base):
    """Registration of a participant on an event (with +1 guests)."""
    __tablename__ = "event_participants"
    __table_args__ = (UniqueConstraint('event_id', 'participant_id'),)

    id = Column(Integer, primary_key=True)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(String(32), ForeignKey("participants.id"), nullable=False)
    participations = Column(Integer, default=1, nullable=False)
    joined_at = Column(UTCDateTime, default=_utcnow)

    event = relationship("EventRow", back_populates="registrations")
    participant = relationship("ParticipantRow")


class SettingRow(Base):
    """Runtime key/value settings editable by admins."""
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_by = Column(String(64), nullable=True)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)


def create_session_factory(url: str = None, echo: bool = False):
    """Create an engine for *url* and return a bound ``sessionmaker``.

    In-memory SQLite gets a single shared connection so that every session
    (and every worker thread) sees the same database.
    """
    url = url or DATABASE_URL
    kwargs = {'echo': echo}
    if url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in url or url in ('sqlite://', 'sqlite:///'):
            kwargs['poolclass'] = StaticPool
    engine = create_engine(url, **kwargs)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(session_factory) -> None:
    """Create all tables on the factory's engine."""
    engine = session_factory.kw['bind']
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized on %s", engine.url.render_as_string(hide_password=True))
