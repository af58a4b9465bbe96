"""Per-context persistence of the seat a client holds in a room.

One row per (context, room code). A context is one browsing tab: a second
context opening the same invite never sees or overwrites the first one's
seat. Rows with no context are copies left by the old shared storage and are
only ever removed.
"""
import logging
import time
from typing import Optional

from sqlalchemy import Column, Float, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import Config
from .models import StoredSession, canonical_room_code

logger = logging.getLogger(__name__)

Base = declarative_base()


class StoredSessionRow(Base):
    __tablename__ = 'stored_session'
    __table_args__ = (UniqueConstraint('context_id', 'room_code', name='uq_stored_session_context_room'),)

    id = Column(Integer, primary_key=True)
    # NULL marks a legacy shared copy
    context_id = Column(String(64), nullable=True, index=True)
    room_code = Column(String(16), nullable=False, index=True)
    session_token = Column(String(256), nullable=False)
    player_id = Column(String(64), nullable=False)
    updated_at = Column(Float, nullable=False, default=time.time)

    def to_record(self) -> StoredSession:
        return StoredSession(room_code=self.room_code, session_token=self.session_token, player_id=self.player_id)


class SessionStore:
    def __init__(self, database_url: str = Config.SESSION_DATABASE_URL, context_id: str = Config.CONTEXT_ID, engine=None):
        self.context_id = context_id
        self.engine = engine if engine is not None else create_engine(database_url)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def write(self, room_code: str, session_token: str, player_id: str) -> None:
        code = canonical_room_code(room_code)
        if not code:
            return
        db = self._sessions()
        try:
            row = db.query(StoredSessionRow).filter_by(context_id=self.context_id, room_code=code).first()
            if row is None:
                row = StoredSessionRow(context_id=self.context_id, room_code=code)
                db.add(row)
            row.session_token = session_token
            row.player_id = player_id
            row.updated_at = time.time()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"[store-write-failed] room={code} error={exc}")
        finally:
            db.close()

    def read(self, room_code: Optional[str]) -> Optional[StoredSession]:
        code = canonical_room_code(room_code)
        if not code:
            return None
        db = self._sessions()
        try:
            row = db.query(StoredSessionRow).filter_by(context_id=self.context_id, room_code=code).first()
        except SQLAlchemyError as exc:
            logger.error(f"[store-read-failed] room={code} error={exc}")
            return None
        finally:
            db.close()
        if row is None or not row.session_token or not row.player_id:
            return None
        return row.to_record()

    def clear(self, room_code: Optional[str]) -> None:
        code = canonical_room_code(room_code)
        if not code:
            return
        db = self._sessions()
        try:
            # Own record plus any legacy shared copy
            db.query(StoredSessionRow).filter(
                StoredSessionRow.room_code == code,
                (StoredSessionRow.context_id == self.context_id) | (StoredSessionRow.context_id.is_(None)),
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"[store-clear-failed] room={code} error={exc}")
        finally:
            db.close()
