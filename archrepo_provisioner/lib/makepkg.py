from __future__ import annotations

import logging
import shlex
from typing import List, Mapping, Sequence

from .command import CmdResult
from .guest import Guest

logger = logging.getLogger(__name__)


def _env_prefix(env: Mapping[str, str]) -> str:
    if not env:
        return ""
    return "env " + " ".join(shlex.quote(f"{k}={v}") for k, v in sorted(env.items())) + " "


def _as_user(user: str, cmd: str) -> str:
    if not user or user == "root":
        return cmd
    return f"runuser -u {shlex.quote(user)} -- {cmd}"


def makepkg_command(
    workdir: str,
    *,
    env: Mapping[str, str] | None = None,
    flags: Sequence[str] = (),
    build_user: str = "builder",
) -> str:
    argv: List[str] = ["makepkg", "-sf", "--noconfirm", *flags]
    inner = _env_prefix(env or {}) + " ".join(shlex.quote(a) for a in argv)
    return f"cd {shlex.quote(workdir)} && " + _as_user(build_user, inner)


def helper_command(
    workdir: str,
    *,
    helper: str = "paru",
    env: Mapping[str, str] | None = None,
    flags: Sequence[str] = (),
    build_user: str = "builder",
) -> str:
    """AUR helper build of a local PKGBUILD directory (`paru -B` / `yay -B`)."""

    argv: List[str] = [helper, "-B", "--noconfirm", *flags, workdir]
    inner = _env_prefix(env or {}) + " ".join(shlex.quote(a) for a in argv)
    return f"cd {shlex.quote(workdir)} && " + _as_user(build_user, inner)


def ensure_build_user(guest: Guest, user: str) -> None:
    """makepkg refuses to run as root; make sure an unprivileged builder exists."""

    if not user or user == "root":
        return
    q = shlex.quote(user)
    guest.exec(f"id -u {q} >/dev/null 2>&1 || useradd -m -r -s /usr/bin/nologin {q}")


def run_build(guest: Guest, command: str) -> CmdResult:
    return guest.exec(command, check=False)
