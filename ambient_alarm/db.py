from datetime import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, String, Text,
    create_engine, event, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class AudioFile(Base):
    __tablename__ = "audio_files"
    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    duration = Column(Integer, nullable=False, default=0)
    format = Column(String, nullable=False, default="")
    upload_date = Column(DateTime, default=datetime.now)
    play_count = Column(Integer, nullable=False, default=0)
    last_played = Column(DateTime, nullable=True)


class Playlist(Base):
    __tablename__ = "playlists"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    play_mode = Column(String, nullable=False, default="sequential")
    created_date = Column(DateTime, default=datetime.now)
    updated_date = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class PlaylistItem(Base):
    __tablename__ = "playlist_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    playlist_id = Column(Integer, ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False, index=True)
    audio_id = Column(Integer, ForeignKey("audio_files.id", ondelete="CASCADE"), nullable=False)
    sort_order = Column(Integer, nullable=False)


class ScheduledTaskRow(Base):
    __tablename__ = "scheduled_tasks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    hour = Column(Integer, nullable=False)
    minute = Column(Integer, nullable=False)
    repeat_mode = Column(String, nullable=False)
    custom_days = Column(String, nullable=True)  # JSON list of weekday indices, 0=Sunday
    playlist_id = Column(Integer, ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False)
    volume = Column(Integer, nullable=False, default=50)
    fade_in_duration = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=0)
    created_date = Column(DateTime, default=datetime.now)


class ExecutionHistoryRow(Base):
    __tablename__ = "execution_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("scheduled_tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    execution_time = Column(DateTime, nullable=False, default=datetime.now)
    status = Column(String, nullable=False)
    duration = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)


def create_db_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees a fresh empty database
        kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def ensure_sqlite_schema(engine: Engine) -> None:
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables,
    so databases created by older releases get them added here.
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.begin() as conn:
        task_cols = conn.execute(text("PRAGMA table_info(scheduled_tasks)")).fetchall()
        task_col_names = {row[1] for row in task_cols}  # (cid, name, type, notnull, dflt_value, pk)
        if "duration_minutes" not in task_col_names:
            conn.execute(text("ALTER TABLE scheduled_tasks ADD COLUMN duration_minutes INTEGER"))

        history_cols = conn.execute(text("PRAGMA table_info(execution_history)")).fetchall()
        history_col_names = {row[1] for row in history_cols}
        if "error" not in history_col_names:
            conn.execute(text("ALTER TABLE execution_history ADD COLUMN error TEXT"))


def fail_interrupted_runs(engine: Engine) -> int:
    """Close out `started` rows left behind by a process that died mid-playback."""
    with engine.begin() as conn:
        result = conn.execute(
            text(
                "UPDATE execution_history SET status='failed', error='interrupted' "
                "WHERE status='started'"
            )
        )
        return result.rowcount or 0


def init_database(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema(engine)
