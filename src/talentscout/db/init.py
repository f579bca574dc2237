from __future__ import annotations

from pathlib import Path

from talentscout.config import get_settings
from talentscout.db.base import Base
from talentscout.db.session import SessionLocal, engine
from talentscout.db import models  # noqa: F401
from talentscout.db.seed import seed_starter_values, seed_taxonomy_categories


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [settings.data_dir, settings.storage_dir]
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
    if settings.database_url.startswith("sqlite:///"):
        Path(settings.database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)


def init_database(*, seed_values: bool = True) -> dict[str, int]:
    ensure_data_directories()
    if engine.dialect.name == "postgresql":
        with engine.begin() as connection:
            connection.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as session:
        categories = seed_taxonomy_categories(session)
        values = seed_starter_values(session) if seed_values else 0
    return {"seeded_categories": categories, "seeded_values": values}
