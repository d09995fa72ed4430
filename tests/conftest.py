from __future__ import annotations

import posixpath
import re
import shlex
import subprocess
from typing import Callable, Dict, List, Optional, Set, Tuple

import pytest

from archrepo_provisioner.config import ProvisionConfig
from archrepo_provisioner.lib.artifacts import is_artifact
from archrepo_provisioner.lib.command import CmdResult, CommandError
from archrepo_provisioner.lib.guest import GuestInfo
from archrepo_provisioner.provisioner import Provisioner

BASE_CONF = b"""[options]
HoldPkg = pacman glibc
Architecture = auto

[core]
Include = /etc/pacman.d/mirrorlist

[extra]
Include = /etc/pacman.d/mirrorlist
"""


class FakeGuest:
    """In-memory stand-in for a WSL guest: files, installed packages, users."""

    def __init__(self, name: str = "archlinux", *, installed=("base", "pacman"), conf: bytes = BASE_CONF) -> None:
        self.name = name
        self.installed: Set[str] = set(installed)
        self.files: Dict[str, bytes] = {"/etc/pacman.conf": conf}
        self.users: Set[str] = {"root"}
        self.passwords: Dict[str, str] = {}
        self.modes: Dict[str, str] = {}
        self.commands: List[str] = []
        self.responsive = True
        self.build_outputs: Dict[str, List[str]] = {}
        # package -> dependencies that `pacman -R...s` takes along
        self.depends: Dict[str, List[str]] = {}
        self.timeouts: List[Optional[float]] = []
        # Called with the timeout when `true` hangs; the call then times out.
        self.hang: Optional[Callable[[float], None]] = None
        self._failures: List[Tuple[str, int, Optional[Callable[["FakeGuest"], None]]]] = []

    def with_name(self, name: str) -> "FakeGuest":
        self.name = name
        return self

    def fail_on(self, needle: str, rc: int = 1, effect: Optional[Callable[["FakeGuest"], None]] = None) -> None:
        self._failures.append((needle, rc, effect))

    def exec(
        self,
        command: str,
        *,
        input_bytes: Optional[bytes] = None,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        self.commands.append(command)
        self.timeouts.append(timeout)
        if command == "true" and self.hang is not None:
            self.hang(timeout or 0.0)
            raise subprocess.TimeoutExpired(["sh", "-c", command], timeout or 0.0)
        rc, out = self._dispatch(command, input_bytes)
        if check and rc != 0:
            raise CommandError(["sh", "-c", command], rc, "fake failure")
        return CmdResult(argv=["sh", "-c", command], returncode=rc, stdout_bytes=out, stderr="")

    def ran(self, needle: str) -> List[str]:
        return [c for c in self.commands if needle in c]

    def _dispatch(self, command: str, data: Optional[bytes]) -> Tuple[int, bytes]:
        for needle, rc, effect in self._failures:
            if needle in command:
                if effect is not None:
                    effect(self)
                return rc, b""

        if command == "true":
            return (0 if self.responsive else 1), b""
        if command.startswith("wslpath "):
            win = shlex.split(command)[-1]
            drive, rest = win[0].lower(), win[2:].replace("\\", "/")
            return 0, f"/mnt/{drive}{rest}\n".encode()
        if "repo-add" in command:
            argv = shlex.split(command)
            db = [a for a in argv if a.endswith(".db.tar.gz")][0]
            self.files[db] = b"index"
            return 0, b""
        if "makepkg" in command or " -B --noconfirm" in command:
            workdir = shlex.split(command)[1]
            base = posixpath.basename(workdir)
            for art in self.build_outputs.get(base, [f"{base}-1.0-1-x86_64.pkg.tar.zst"]):
                self.files[f"{workdir}/{art}"] = b"pkg"
            return 0, b""
        if command.startswith("find "):
            d = shlex.split(command)[1]
            found = sorted(p for p in self.files if posixpath.dirname(p) == d and is_artifact(p))
            return 0, "".join(p + "\n" for p in found).encode()
        m = re.search(r"&& (mv|cp) -f (.+)$", command)
        if m:
            src, dst = shlex.split(m.group(2))
            if m.group(1) == "mv":
                self.files[dst] = self.files.pop(src)
            else:
                self.files[dst] = self.files.get(src, b"prebuilt")
            return 0, b""
        if "cat > " in command:
            argv = shlex.split(command)
            path = argv[argv.index(">") + 1]
            self.files[path] = data or b""
            if "chmod" in argv:
                self.modes[path] = argv[argv.index("chmod") + 1]
            return 0, b""
        if command.startswith("cat "):
            path = shlex.split(command)[1]
            if path not in self.files:
                return 1, b""
            return 0, self.files[path]
        if command.startswith("rm -f "):
            self.files.pop(shlex.split(command)[2], None)
            return 0, b""
        if command == "pacman -Qq":
            return 0, "".join(p + "\n" for p in sorted(self.installed)).encode()
        if command.startswith("pacman -R"):
            argv = shlex.split(command)
            pkgs = argv[3:]
            if not all(p in self.installed for p in pkgs):
                return 1, b""
            self.installed.difference_update(pkgs)
            if "s" in argv[1]:
                for p in pkgs:
                    self.installed.difference_update(self.depends.get(p, []))
            return 0, b""
        if command.startswith("pacman -Syu") or command.startswith("pacman -S "):
            for p in shlex.split(command)[4:]:
                self.installed.add(p.split("/")[-1])
            return 0, b""
        if command.startswith("id -u"):
            user = shlex.split(command)[2]
            if "useradd" in command:
                self.users.add(user)
                return 0, b""
            return (0 if user in self.users else 1), b""
        if command.startswith("useradd"):
            self.users.add(shlex.split(command)[-1])
            return 0, b""
        if command == "chpasswd":
            name, pw = (data or b"").decode().strip().split(":", 1)
            self.passwords[name] = pw
            return 0, b""
        if command.startswith("test -e "):
            return (0 if shlex.split(command)[2] in self.files else 1), b""
        return 0, b""


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Destroyer:
    def __init__(self, fail: bool = False) -> None:
        self.calls: List[str] = []
        self.fail = fail

    def __call__(self, name: str) -> None:
        from archrepo_provisioner.errors import DestroyError

        self.calls.append(name)
        if self.fail:
            raise DestroyError(f"cannot unregister {name}")


@pytest.fixture
def guest() -> FakeGuest:
    return FakeGuest()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_provisioner(guest, clock):
    def _make(raw=None, *, run_id="run-1", listed=None, destroyer=None, fake=None):
        g = fake or guest
        names = listed if listed is not None else [g.name]
        prov = Provisioner(
            ProvisionConfig(raw=raw or {}),
            guest=g,
            guest_lister=lambda: [GuestInfo(name=n, state="Running", version="2") for n in names],
            guest_destroyer=destroyer or Destroyer(),
            clock=clock,
            sleep=clock.sleep,
            run_id=run_id,
        )
        return prov

    return _make
