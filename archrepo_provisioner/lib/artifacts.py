from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import Iterable, List

_ARTIFACT_RE = re.compile(r"^(?P<name>.+)-(?P<ver>[^-]+)-(?P<rel>[^-]+)-(?P<arch>[^-]+)\.pkg\.tar(\.[a-z0-9]+)?$")


def is_artifact(filename: str) -> bool:
    """True for built packages; detached signatures and the index are not artifacts."""

    base = Path(filename).name
    if base.endswith(".sig"):
        return False
    return ".pkg.tar" in base


def package_name_from_artifact(filename: str) -> str:
    """'foo-bar-1.2-3-x86_64.pkg.tar.zst' -> 'foo-bar'."""

    base = Path(filename).name
    m = _ARTIFACT_RE.match(base)
    if not m:
        raise ValueError(f"Not a package artifact name: {filename}")
    return m.group("name")


def package_names(filenames: Iterable[str]) -> List[str]:
    names: List[str] = []
    for f in filenames:
        if not is_artifact(f):
            continue
        n = package_name_from_artifact(f)
        if n not in names:
            names.append(n)
    return names


def discover_artifacts(directory: str) -> List[str]:
    d = Path(directory)
    if not d.is_dir():
        return []
    return sorted(str(p) for p in d.iterdir() if p.is_file() and is_artifact(p.name))


def list_guest_artifacts(guest, directory: str) -> List[str]:
    """Artifacts directly inside a guest directory, sorted, signatures excluded."""

    q = shlex.quote(directory.rstrip("/") or "/")
    r = guest.exec(f"find {q} -maxdepth 1 -type f -name '*.pkg.tar*' ! -name '*.sig' | sort")
    return [line.strip() for line in r.stdout.splitlines() if line.strip()]
