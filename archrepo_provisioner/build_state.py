from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, List


def load_build_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("build state must contain an object")
    return data


def save_build_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def ensure_build_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    state.setdefault("recipes", {})
    return state


def recipe_fingerprint(recipe_dir: Path) -> str:
    """sha256 over every regular file of the recipe, in path order."""

    h = hashlib.sha256()
    for f in sorted(p for p in recipe_dir.rglob("*") if p.is_file()):
        rel = f.relative_to(recipe_dir).as_posix()
        if rel.startswith(("src/", "pkg/")) or ".pkg.tar" in rel:
            continue
        h.update(rel.encode("utf-8") + b"\0")
        h.update(f.read_bytes())
    return h.hexdigest()


def mark_built(state: Dict[str, Any], *, recipe: str, fingerprint: str, artifacts: List[str]) -> None:
    state.setdefault("recipes", {})[recipe] = {"fingerprint": fingerprint, "artifacts": list(artifacts)}


def is_current(state: Dict[str, Any], *, recipe: str, fingerprint: str, out_dir: Path) -> bool:
    entry = (state.get("recipes") or {}).get(recipe) or {}
    if entry.get("fingerprint") != fingerprint:
        return False
    artifacts = entry.get("artifacts") or []
    return bool(artifacts) and all((out_dir / a).exists() for a in artifacts)
