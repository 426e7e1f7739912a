"""
Local mirror store.
Persisted key-value copy of list data, used to serve cached lists before
(or without) reaching the remote store. Lives in its own SQLite file.
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy import Column, String, Text, DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from kingdom.constants import MIRROR_LAST_SYNC_PREFIX
from kingdom.exceptions import MirrorWriteException

logger = logging.getLogger("kingdom.mirror")

MIRROR_PATH = os.getenv("KINGDOM_MIRROR_PATH", "./kingdom_mirror.db")

MirrorBase = declarative_base()


class MirrorEntry(MirrorBase):
    __tablename__ = "mirror_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON document
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class LocalMirror:
    """Key-value persistence for cached lists and last-sync times"""

    def __init__(self, engine: Engine):
        self.engine = engine
        MirrorBase.metadata.create_all(bind=engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @classmethod
    def from_path(cls, path: str = MIRROR_PATH) -> "LocalMirror":
        engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
        return cls(engine)

    def get_item(self, key: str) -> Optional[Any]:
        """Read a value, None when missing or unreadable"""
        db = self.SessionLocal()
        try:
            entry = db.query(MirrorEntry).filter(MirrorEntry.key == key).first()
            if not entry:
                return None
            return json.loads(entry.value)
        except (SQLAlchemyError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read mirror key {key}: {e}")
            return None
        finally:
            db.close()

    def set_item(self, key: str, value: Any) -> None:
        """Write a JSON-serializable value"""
        db = self.SessionLocal()
        try:
            payload = json.dumps(value, default=str)
            entry = db.query(MirrorEntry).filter(MirrorEntry.key == key).first()
            if entry:
                entry.value = payload
            else:
                db.add(MirrorEntry(key=key, value=payload))
            db.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            db.rollback()
            raise MirrorWriteException(key, str(e)) from e
        finally:
            db.close()

    def remove_item(self, key: str) -> None:
        db = self.SessionLocal()
        try:
            db.query(MirrorEntry).filter(MirrorEntry.key == key).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise MirrorWriteException(key, str(e)) from e
        finally:
            db.close()

    def keys(self) -> List[str]:
        db = self.SessionLocal()
        try:
            return [key for (key,) in db.query(MirrorEntry.key).order_by(MirrorEntry.key).all()]
        finally:
            db.close()

    def clear(self) -> None:
        """Drop every cached entry"""
        db = self.SessionLocal()
        try:
            db.query(MirrorEntry).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise MirrorWriteException("*", str(e)) from e
        finally:
            db.close()

    # ===== LISTS =====

    def load_records(self, key: str) -> Optional[List[dict]]:
        value = self.get_item(key)
        if value is None:
            return None
        if not isinstance(value, list):
            logger.warning(f"Mirror key {key} does not hold a list, ignoring it")
            return None
        return value

    def save_records(self, key: str, records: Iterable[BaseModel]) -> None:
        """Persist confirmed records only; pending placeholders never reach disk"""
        payload = [
            record.model_dump(mode="json", exclude={"state"})
            for record in records
            if not getattr(record, "is_pending", False)
        ]
        self.set_item(key, payload)

    def get_last_sync(self, key: str) -> Optional[datetime]:
        value = self.get_item(MIRROR_LAST_SYNC_PREFIX + key)
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            return None

    def set_last_sync(self, key: str, when: Optional[datetime] = None) -> None:
        self.set_item(MIRROR_LAST_SYNC_PREFIX + key, (when or datetime.now()).isoformat())
