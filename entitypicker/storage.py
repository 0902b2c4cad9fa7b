import json
from pathlib import Path
from typing import Any, Dict, List

from .logger import get_logger

logger = get_logger()


def load_snapshot(path: Path) -> List[Dict[str, Any]]:
    """
    Load catalog records from a JSON snapshot.
    Accepts a bare list of records or a catalog response ({"items": [...]}).
    A missing or empty file is an empty catalog; a corrupt file is logged
    and treated as empty.
    """
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            content = f.read().strip()
            if not content:
                return []
            data = json.loads(content)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning("Unreadable catalog snapshot", path=str(path), error=str(e))
        return []
    items = data.get("items", []) if isinstance(data, dict) else data
    return [r for r in items if isinstance(r, dict)]


def save_snapshot(path: Path, records: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump({"items": records}, f, indent=2, ensure_ascii=False)
