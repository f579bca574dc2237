from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="talentscout-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'talentscout.db'}"
os.environ["DATA_DIR"] = str(_TEST_ROOT)
os.environ["STORAGE_DIR"] = str(_TEST_ROOT / "storage")
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOCAL_LLM_ENABLED"] = "false"
os.environ["WORKER_ENABLED"] = "false"

from talentscout.core.runtime import reset_runtime  # noqa: E402
from talentscout.db.base import Base  # noqa: E402
from talentscout.db import models  # noqa: E402,F401
from talentscout.db.seed import seed_taxonomy_categories  # noqa: E402
from talentscout.db.session import SessionLocal, engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_taxonomy_categories(session)
    reset_runtime()
    yield


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session
