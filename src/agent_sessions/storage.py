"""Whole-document JSON helpers shared by the session and workspace indexes."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from .errors import StorageWriteError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def read_json_document(path: Path) -> Any | None:
    """Read a JSON document, returning None if it is absent or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read %s: %s", path, e)
        return None


def write_json_document(path: Path, data: Any) -> None:
    """Replace a JSON document in one step.

    The new content goes to a sibling temp file first, so readers see
    either the old or the new document, never a truncated one.
    """
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write %s: %s", path, e)
        raise StorageWriteError(f"Failed to write {path.name}", {"path": str(path)}) from e
