"""JSON file helpers shared by the file-backed stores.

Writes are atomic (temp file + rename). Read errors are logged and treated
as an empty file so a corrupt store never prevents startup.
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def load_json_list(path: Path) -> list[dict[str, Any]]:
    """Load a JSON list, returning an empty list if missing or unreadable."""
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Error loading %s: %s", path, e)
        return []
    return data if isinstance(data, list) else []


def save_json_list(path: Path, data: list[dict[str, Any]]) -> None:
    """Save a JSON list atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        temp_path.replace(path)
    except OSError as e:
        logger.error("Error saving %s: %s", path, e)
        if temp_path.exists():
            temp_path.unlink()
        raise
