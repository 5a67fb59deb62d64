import json
import os

# Settings are read at import time; seed them before any sessionguard import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test-access-key")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test-secret-key")
os.environ.setdefault("RECORDINGS_S3_BUCKET", "arn:aws:s3:::test-recordings")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("HUGGINGFACE_ACCESS_TOKEN", "test-hf-token")
os.environ.setdefault("MONITOR_ENVIRONMENT", "test")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sessionguard.services.bookkeeping import BookkeepingStore
from sessionguard.utils.exceptions import StorageError


class FakeStorage:
    """In-memory stand-in for StorageService keyed by object key."""

    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.content_types = {}
        self.fail_keys = set()

    async def get_to_file(self, key, local_path):
        if key not in self.objects:
            raise StorageError(f"Download failed for {key}: NoSuchKey")
        with open(local_path, "wb") as f:
            f.write(self.objects[key])

    async def put_file(self, key, local_path, content_type=None):
        if key in self.fail_keys:
            raise StorageError(f"Upload failed for {key}")
        with open(local_path, "rb") as f:
            self.objects[key] = f.read()
        self.content_types[key] = content_type

    async def put_json(self, key, value):
        if key in self.fail_keys:
            raise StorageError(f"Upload failed for {key}")
        self.objects[key] = json.dumps(value, indent=2).encode("utf-8")
        self.content_types[key] = "application/json"

    def json(self, key):
        return json.loads(self.objects[key])


@pytest.fixture
def store() -> BookkeepingStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    bookkeeping = BookkeepingStore(factory)
    bookkeeping.ensure_schema()
    yield bookkeeping
    engine.dispose()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()
