"""Blob storage service API built with FastAPI.

The gateway uploads payment screenshots and bundle archives here and stores
the returned URL on the order or bundle. Objects are written with a raw
request body plus metadata headers, and served back by key. Persistence is
delegated to the SQLAlchemy-backed ``repo.BlobRepo``.
"""

import logging
import os
import re
import time
import uuid

from fastapi import FastAPI, Header, HTTPException, Request, Response
from pydantic import BaseModel
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from repo import BlobRepo, engine, init_db

app = FastAPI(title="Storage Service")

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://storage:9003").rstrip("/")
MAX_OBJECT_BYTES = int(os.getenv("MAX_OBJECT_BYTES", str(100 * 1024 * 1024)))
CATEGORY_RE = re.compile(r"^[a-z0-9-]{1,64}$")
OWNER_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

logger = logging.getLogger("storage")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


@app.on_event("startup")
def _startup_db():
    # wait briefly until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class StoredObject(BaseModel):
    """Response body of a successful upload.

    Attributes:
        key: Object key, ``{category}/{owner}/{timestamp}-{filename}``.
        url: Absolute URL the object is served at.
        size: Stored size in bytes.
    """

    key: str
    url: str
    size: int


@app.get("/health")
def health():
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
    except Exception as exc:
        logger.error("health check failed", extra={"error": str(exc)})
        raise HTTPException(status_code=503, detail="DATABASE_CONNECTION_ERROR")
    return {"ok": True}


@app.post("/objects", response_model=StoredObject, status_code=201)
async def put_object(
    request: Request,
    x_filename: str = Header(default="upload"),
    x_category: str = Header(),
    x_owner_id: str = Header(),
    content_type: str = Header(default="application/octet-stream"),
):
    """Store the raw request body as a new object.

    Raises:
        HTTPException: 400 for an empty body or malformed metadata headers,
            413 when the body exceeds ``MAX_OBJECT_BYTES``.
    """
    if not CATEGORY_RE.match(x_category):
        raise HTTPException(status_code=400, detail="INVALID_CATEGORY")
    if not OWNER_RE.match(x_owner_id):
        raise HTTPException(status_code=400, detail="INVALID_OWNER")

    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="EMPTY_BODY")
    if len(data) > MAX_OBJECT_BYTES:
        raise HTTPException(status_code=413, detail="PAYLOAD_TOO_LARGE")

    # the SQLAlchemy session is blocking; keep it off the event loop
    blob = await run_in_threadpool(BlobRepo().put, x_category, x_owner_id, x_filename, content_type, data)
    logger.info(
        "object stored",
        extra={"request_id": request.state.request_id, "key": blob.key, "size": blob.size},
    )
    return StoredObject(key=blob.key, url=f"{PUBLIC_BASE_URL}/objects/{blob.key}", size=blob.size)


@app.get("/objects/{key:path}")
def get_object(key: str):
    blob = BlobRepo().get(key)
    if blob is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return Response(content=blob.data, media_type=blob.content_type)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
