import os
from typing import Optional

from sqlalchemy import create_engine, Column, DateTime, String, Text
from sqlalchemy.orm import sessionmaker, declarative_base
from datetime import datetime, timezone

from .. import settings

Base = declarative_base()

class StoredValue(Base):
    __tablename__ = "client_storage"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def _ensure_sqlite_dir(url: str):
    if url.startswith("sqlite:///") and ":memory:" not in url:
        ddir = os.path.dirname(url[len("sqlite:///"):])
        if ddir:
            os.makedirs(ddir, exist_ok=True)


class TokenStore:
    """Durable copy of the bearer token: a single key in a SQLite table."""

    def __init__(self, url: str = settings.TOKEN_DB_URL, key: str = settings.TOKEN_STORAGE_KEY):
        _ensure_sqlite_dir(url)
        self.key = key
        self.engine = create_engine(url, echo=False, future=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)
        Base.metadata.create_all(self.engine)

    def load(self) -> Optional[str]:
        db = self.SessionLocal()
        try:
            row = db.get(StoredValue, self.key)
            return row.value if row is not None else None
        finally:
            db.close()

    def save(self, token: str):
        db = self.SessionLocal()
        try:
            row = db.get(StoredValue, self.key)
            if row is None:
                row = StoredValue(key=self.key, value=token)
                db.add(row)
            else:
                row.value = token
                row.updated_at = datetime.now(timezone.utc)
            db.commit()
        finally:
            db.close()

    def clear(self):
        db = self.SessionLocal()
        try:
            db.query(StoredValue).filter(StoredValue.key == self.key).delete()
            db.commit()
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()
