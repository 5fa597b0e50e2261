"""Local JSON artifact store for extracted schema snapshots."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from sqlchat.schema.models import SchemaSnapshot

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_CACHE_DIR = Path.home() / ".sqlchat" / "cache" / "schemas"


def snapshot_signature(database_id: str) -> str:
    return hashlib.sha256(database_id.encode("utf-8")).hexdigest()[:24]


class SnapshotStore:
    """
    Reads and writes one snapshot file per database.

    When ``path`` is given, every database maps to that single file.
    """

    def __init__(self, cache_dir: Path | None = None, path: Path | None = None):
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else DEFAULT_SCHEMA_CACHE_DIR
        self.path = Path(path).expanduser() if path else None

    def path_for(self, database_id: str) -> Path:
        if self.path is not None:
            return self.path
        return self.cache_dir / f"{snapshot_signature(database_id)}.json"

    def save(self, database_id: str, snapshot: SchemaSnapshot) -> Path:
        path = self.path_for(database_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(snapshot.model_dump_json(by_alias=True, indent=2))
        logger.info(
            f"Saved schema snapshot for {snapshot.database_name} to {path}",
            extra={"database_id": database_id, "tables": snapshot.total_tables},
        )
        return path

    def load(self, database_id: str) -> SchemaSnapshot | None:
        """Return the stored snapshot, or None when missing or unreadable."""
        path = self.path_for(database_id)
        if not path.exists():
            logger.debug(f"No schema snapshot at {path}")
            return None
        try:
            return SchemaSnapshot.model_validate(json.loads(path.read_text()))
        except (json.JSONDecodeError, OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable schema snapshot {path}: {e}")
            return None
