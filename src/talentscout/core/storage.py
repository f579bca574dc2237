from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from talentscout.config import Settings, get_settings


class FileStorage:
    """Path-addressable blob storage rooted at ``storage_dir``."""

    def __init__(self, root: Path | None = None, *, settings: Settings | None = None):
        self.root = Path(root or (settings or get_settings()).storage_dir)

    def path(self, relative: str) -> Path:
        target = (self.root / relative).resolve()
        if self.root.resolve() not in target.parents and target != self.root.resolve():
            raise ValueError(f"path {relative} escapes storage root")
        return target

    def write_bytes(self, relative: str, data: bytes) -> Path:
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def write_json(self, relative: str, payload: Any) -> Path:
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
        return target

    def read_json(self, relative: str) -> Any:
        return json.loads(self.path(relative).read_text(encoding="utf-8"))

    def exists(self, relative: str) -> bool:
        return self.path(relative).exists()


def scraped_data_key(username: str, run_id: int) -> str:
    return f"{username}/{run_id}/scraped-data/scraped_data.json"


def processed_data_key(username: str, run_id: int) -> str:
    return f"{username}/{run_id}/processed-data/ai_processed_data.json"


def documents_dir_key(username: str, run_id: int) -> str:
    return f"{username}/{run_id}/documents"
