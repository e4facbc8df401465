"""SQLAlchemy repository for stored blobs.

Each uploaded object is one row of the ``blobs`` table: its key, the
metadata sent by the uploader and the raw bytes. The database is selected
with ``DATABASE_URL`` or, when unset, assembled from the ``DB_*`` variables
(PostgreSQL via psycopg).
"""

import os
import re
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, LargeBinary, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column
from sqlalchemy.pool import StaticPool

DB_HOST = os.getenv("DB_HOST", "storage-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "storage")
DB_USER = os.getenv("DB_USER", "storage_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "storage-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

if DATABASE_URL.startswith("sqlite"):
    # single shared connection so an in-memory database survives across sessions
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class Base(DeclarativeBase):
    pass


class Blob(Base):
    """A stored object.

    Attributes:
        key: ``{category}/{owner_id}/{timestamp}-{filename}``, primary key.
        content_type: MIME type declared by the uploader.
        size: Length of ``data`` in bytes.
        data: The object bytes.
    """

    __tablename__ = "blobs"
    key = mapped_column(String(512), primary_key=True)
    category = mapped_column(String(64), nullable=False, index=True)
    owner_id = mapped_column(String(128), nullable=False, index=True)
    filename = mapped_column(String(255), nullable=False)
    content_type = mapped_column(String(100), nullable=False, default="application/octet-stream")
    size = mapped_column(Integer, nullable=False)
    data = mapped_column(LargeBinary, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


def init_db():
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name or "upload")


def build_key(category: str, owner_id: str, filename: str) -> str:
    return f"{category}/{owner_id}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"


class BlobRepo:
    """Store and fetch blobs by key."""

    def put(self, category: str, owner_id: str, filename: str, content_type: str, data: bytes) -> Blob:
        """Insert a new blob and return it (detached, with ``data`` loaded).

        Args:
            category: Logical bucket, e.g. ``payment-screenshots``.
            owner_id: Identifier of the owning entity (an order id).
            filename: Client file name; sanitized before it enters the key.
            content_type: MIME type stored and served back on reads.
            data: Object bytes.
        """
        blob = Blob(
            key=build_key(category, owner_id, filename),
            category=category,
            owner_id=owner_id,
            filename=sanitize_filename(filename),
            content_type=content_type or "application/octet-stream",
            size=len(data),
            data=data,
        )
        with get_session() as s:
            s.add(blob)
            s.commit()
            s.refresh(blob)
            s.expunge(blob)
        return blob

    def get(self, key: str) -> Blob | None:
        with get_session() as s:
            blob = s.get(Blob, key)
            if blob is not None:
                s.expunge(blob)
            return blob
