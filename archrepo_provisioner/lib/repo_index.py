from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path
from typing import List, Sequence

from ..errors import HostEnvironmentError
from .artifacts import list_guest_artifacts
from .command import run_cmd
from .guest import Guest

logger = logging.getLogger(__name__)


def db_path(directory: str, name: str) -> str:
    return f"{directory.rstrip('/')}/{name}.db.tar.gz"


def regenerate_guest_index(guest: Guest, directory: str, name: str, *, sign: bool = False) -> List[str]:
    """Rebuild the index over every artifact currently in directory, in one call.

    Returns the artifacts that were indexed.
    """

    artifacts = list_guest_artifacts(guest, directory)
    if not artifacts:
        logger.warning("No artifacts in %s; index not regenerated", directory)
        return []
    argv = ["repo-add"]
    if sign:
        argv.append("--sign")
    argv += [db_path(directory, name), *artifacts]
    guest.exec(" ".join(shlex.quote(a) for a in argv))
    logger.info("Indexed %d artifact(s) into %s", len(artifacts), db_path(directory, name))
    return artifacts


def add_to_repo(repo_dir: str, packages: Sequence[str], *, dry_run: bool = False) -> None:
    """Add artifacts to a host-side repository directory.

    Uses repoctl when installed; otherwise one repo-add call per package
    against <repo_dir>/<basename(repo_dir)>.db.tar.gz.
    """

    if not packages:
        raise ValueError("add_to_repo requires at least one package")

    if shutil.which("repoctl"):
        run_cmd(["repoctl", "add", repo_dir, *packages], dry_run=dry_run)
    else:
        if not shutil.which("repo-add") and not dry_run:
            raise HostEnvironmentError("Neither repoctl nor repo-add is available")
        db = db_path(repo_dir, Path(repo_dir.rstrip("/")).name)
        for p in packages:
            run_cmd(["repo-add", db, p], dry_run=dry_run)

    logger.info("Added %s to %s", " ".join(packages), repo_dir)
