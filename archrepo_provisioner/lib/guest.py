from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Sequence

from ..errors import DestroyError, GuestCreateError
from .command import CmdResult, CommandError, run_cmd

logger = logging.getLogger(__name__)


class Guest(Protocol):
    """Anything that can run a shell command string inside the guest."""

    name: str

    def exec(
        self,
        command: str,
        *,
        input_bytes: Optional[bytes] = None,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        ...

    def with_name(self, name: str) -> "Guest":
        ...


@dataclass(frozen=True)
class GuestInfo:
    name: str
    state: str
    version: str
    default: bool = False

    @property
    def running(self) -> bool:
        return self.state.lower() == "running"


def decode_wsl_output(raw: bytes) -> str:
    # wsl.exe writes UTF-16LE when talking to a pipe on most Windows builds.
    if b"\x00" in raw:
        text = raw.decode("utf-16-le", errors="replace")
    else:
        text = raw.decode("utf-8", errors="replace")
    return text.lstrip("\ufeff").replace("\r", "")


def parse_guest_list(text: str) -> List[GuestInfo]:
    """Parse `wsl -l -v` output into GuestInfo entries."""

    guests: List[GuestInfo] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        default = stripped.startswith("*")
        parts = stripped.lstrip("*").split()
        if not parts or parts[0].upper() == "NAME":
            continue
        state = parts[1] if len(parts) > 1 else "Unknown"
        version = parts[2] if len(parts) > 2 else ""
        guests.append(GuestInfo(name=parts[0], state=state, version=version, default=default))
    return guests


def resolve_guest_name(wanted: str, guests: Sequence[GuestInfo]) -> Optional[str]:
    """Map a requested distro name onto the registered guest name.

    Exact (case-insensitive) match wins; otherwise the first prefix match.
    """

    low = wanted.lower()
    for g in guests:
        if g.name.lower() == low:
            return g.name
    for g in guests:
        if g.name.lower().startswith(low) or low.startswith(g.name.lower()):
            return g.name
    return None


@dataclass(frozen=True)
class WslGuest:
    name: str
    wsl_exe: str = "wsl.exe"
    user: str = "root"
    command_timeout: Optional[float] = None

    def with_name(self, name: str) -> "WslGuest":
        return replace(self, name=name)

    def exec(
        self,
        command: str,
        *,
        input_bytes: Optional[bytes] = None,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        return run_cmd(
            [self.wsl_exe, "-d", self.name, "-u", self.user, "--", "sh", "-c", command],
            check=check,
            input_bytes=input_bytes,
            timeout=timeout if timeout is not None else self.command_timeout,
        )


def list_guests(wsl_exe: str = "wsl.exe") -> List[GuestInfo]:
    r = run_cmd([wsl_exe, "-l", "-v"], check=False)
    if r.returncode != 0:
        # wsl.exe exits non-zero when no distribution is registered yet.
        logger.debug("Guest listing returned %s", r.returncode)
        return []
    return parse_guest_list(decode_wsl_output(r.stdout_bytes))


def create_guest(distro: str, *, wsl_exe: str = "wsl.exe") -> None:
    if resolve_guest_name(distro, list_guests(wsl_exe)):
        logger.info("Guest %s already registered; not reinstalling", distro)
        return
    try:
        run_cmd([wsl_exe, "--install", "-d", distro, "--no-launch"])
    except CommandError as e:
        raise GuestCreateError(f"Could not create guest {distro}: {e}") from e
    logger.info("Guest %s installed", distro)


def destroy_guest(name: str, *, wsl_exe: str = "wsl.exe") -> None:
    try:
        run_cmd([wsl_exe, "--unregister", name])
    except CommandError as e:
        raise DestroyError(f"Could not unregister guest {name}: {e}") from e
    logger.warning("Guest %s unregistered", name)


def read_file(guest: Guest, path: str) -> bytes:
    return guest.exec(f"cat {shlex.quote(path)}").stdout_bytes


def write_file(guest: Guest, path: str, data: bytes, *, mode: Optional[str] = None) -> None:
    q = shlex.quote(path)
    cmd = f"mkdir -p \"$(dirname {q})\" && cat > {q}"
    if mode:
        cmd += f" && chmod {mode} {q}"
    guest.exec(cmd, input_bytes=data)


def remove_file(guest: Guest, path: str) -> None:
    guest.exec(f"rm -f {shlex.quote(path)}")


def looks_like_host_path(path: str) -> bool:
    return "\\" in path or (len(path) > 1 and path[1] == ":")


def to_guest_path(guest: Guest, path: str) -> str:
    """Translate a Windows host path into the guest's view of it (wslpath)."""

    if not looks_like_host_path(path):
        return path
    r = guest.exec(f"wslpath -a -u {shlex.quote(path)}")
    return r.stdout.strip()
