import os
import tempfile
from pathlib import Path

import pytest

_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix='chat-tests-'))
DEFAULT_TEST_DB_URL = f"sqlite:///{_TEST_DB_DIR / 'test.db'}"
TEST_DB_URL = os.getenv("TEST_DB_URL", DEFAULT_TEST_DB_URL)
os.environ["DB_URL"] = TEST_DB_URL

from app.core.config import settings
from app.db.init_db import init_db

settings.DB_URL = TEST_DB_URL


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture(autouse=True, scope="session")
def _configure_test_database():
    init_db(drop_all=True)
    yield
