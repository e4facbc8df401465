import os
import sys
from pathlib import Path

import pytest

# in-memory database for the service under test, set before ``repo`` is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PUBLIC_BASE_URL", "http://storage.test")

SERVICE_DIR = str(Path(__file__).resolve().parent.parent)
if SERVICE_DIR not in sys.path:
    sys.path.insert(0, SERVICE_DIR)


@pytest.fixture
def storage_client():
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as c:
        yield c
