from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Callable, Dict, List

from .config import ProvisionConfig, expand_prebuilt


def _collect(errors: List[str], fn: Callable[[], Any], default: Any) -> Any:
    # Summary mode reports problems instead of failing on them.
    try:
        return fn()
    except ValueError as e:
        errors.append(str(e))
        return default


def _items(cfg: ProvisionConfig) -> List[Dict[str, Any]]:
    return [
        {
            "source": item.source,
            "name": item.base_name,
            "path": item.path.value,
            "env": item.env_map,
            "flags": list(item.flags),
        }
        for item in cfg.build_items
    ]


def build_summary(cfg: ProvisionConfig, *, run_id: str | None = None) -> Dict[str, Any]:
    """Describe what a run would do. Reads host files only, never the guest."""

    errors: List[str] = []
    user = _collect(errors, lambda: cfg.user, None)
    summary: Dict[str, Any] = {
        "guest": _collect(errors, lambda: cfg.guest_name, None),
        "distro": _collect(errors, lambda: cfg.distro, None),
        "run_id": run_id or _collect(errors, lambda: cfg.run_id, None),
        "packages": _collect(errors, lambda: cfg.packages, []),
        "local_artifacts": _collect(errors, lambda: expand_prebuilt(cfg.prebuilt_patterns), []),
        "build_items": _collect(errors, lambda: _items(cfg), []),
        "local_repo": _collect(errors, lambda: asdict(cfg.local_repo), {}),
        "user": user.name if user else None,
    }
    if errors:
        summary["config_errors"] = errors
    return summary


def render_summary(summary: Dict[str, Any], fmt: str = "json") -> str:
    if fmt in {"yaml", "yml"}:
        import yaml  # type: ignore

        return yaml.safe_dump(summary, sort_keys=False)
    return json.dumps(summary, indent=2) + "\n"
