from __future__ import annotations

import logging
import shlex
from typing import FrozenSet, Sequence

from .guest import Guest

logger = logging.getLogger(__name__)


def _join(packages: Sequence[str]) -> str:
    return " ".join(shlex.quote(p) for p in packages)


def pacman_refresh(guest: Guest) -> None:
    guest.exec("pacman -Sy --noconfirm")


def pacman_install(guest: Guest, packages: Sequence[str], *, upgrade: bool = True) -> int:
    """Install all packages in one transaction; returns pacman's exit code."""

    if not packages:
        return 0
    op = "-Syu" if upgrade else "-S"
    r = guest.exec(f"pacman {op} --noconfirm --needed {_join(packages)}", check=False)
    return r.returncode


def pacman_remove(guest: Guest, packages: Sequence[str]) -> int:
    if not packages:
        return 0
    # Without -s: removal must not cascade into packages that predate the run.
    r = guest.exec(f"pacman -Rn --noconfirm {_join(packages)}", check=False)
    return r.returncode


def pacman_query_installed(guest: Guest) -> FrozenSet[str]:
    r = guest.exec("pacman -Qq")
    return frozenset(line.strip() for line in r.stdout.splitlines() if line.strip())
