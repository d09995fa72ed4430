from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_records(path: str) -> Dict[str, Any]:
    """Load the host-side run record file ({"runs": {run_id: record}})."""

    p = Path(path)
    if not p.exists():
        return {"runs": {}}

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        import yaml  # type: ignore

        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"Run record file must be an object/dict, got {type(data)}")

    data.setdefault("runs", {})
    return data


def save_records(path: str, data: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        import yaml  # type: ignore

        p.write_text(yaml.safe_dump(data, sort_keys=False) + "\n", encoding="utf-8")
    else:
        p.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def record_run(path: str, record: Dict[str, Any]) -> None:
    data = load_records(path)
    data["runs"][str(record["run_id"])] = record
    data["last_run"] = record["run_id"]
    save_records(path, data)
    logger.info("Run record saved to %s", path)
