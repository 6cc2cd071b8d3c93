from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from services.grid_config import get_grid_settings
from services.grid_engine.session import SaveResult, Saver


logger = logging.getLogger(__name__)

_settings = get_grid_settings()
DATA_DIR = Path(_settings.data_dir)
DATA_DIR.mkdir(parents=True, exist_ok=True)


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}  # SQLite-specific
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(_settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class SavedSpreadsheet(Base):
    __tablename__ = "spreadsheets"

    id = Column(String, primary_key=True, index=True)
    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    content = Column(LargeBinary, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


def init_db() -> None:
    """Create tables if they don't exist."""

    Base.metadata.create_all(bind=engine)


def configure_database(url: str) -> None:
    """Rebind the engine (e.g. to a temporary database in tests)."""
    global engine
    engine = _make_engine(url)
    SessionLocal.configure(bind=engine)
    init_db()


@contextmanager
def get_session() -> Session:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class SpreadsheetStore:
    """Persists exported spreadsheet payloads. Acts as the session's saver."""

    def save(self, file_id: str, payload: bytes, filename: str, content_type: str) -> SaveResult:
        try:
            with get_session() as db:
                record = db.get(SavedSpreadsheet, file_id)
                if record is None:
                    record = SavedSpreadsheet(id=file_id, version=1)
                    db.add(record)
                else:
                    record.version += 1
                record.filename = filename
                record.content_type = content_type
                record.content = payload
                version = record.version
        except SQLAlchemyError as e:
            logger.error(f"[SAVE] Database write failed for {file_id}: {e}")
            return SaveResult(success=False, message="Failed to save spreadsheet")
        return SaveResult(success=True, message=f"Saved {filename} (version {version})")

    def saver_for(self, file_id: str) -> Saver:
        def _save(payload: bytes, filename: str, content_type: str) -> SaveResult:
            return self.save(file_id, payload, filename, content_type)

        return _save

    def load(self, file_id: str) -> Optional[dict]:
        with get_session() as db:
            record = db.get(SavedSpreadsheet, file_id)
            if record is None:
                return None
            return {
                "id": record.id,
                "filename": record.filename,
                "content_type": record.content_type,
                "content": record.content,
                "version": record.version,
            }
