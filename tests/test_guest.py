import pytest

from archrepo_provisioner.errors import DestroyError, GuestCreateError
from archrepo_provisioner.lib import guest as guest_mod
from archrepo_provisioner.lib.command import CmdResult, CommandError
from archrepo_provisioner.lib.guest import (
    GuestInfo,
    WslGuest,
    decode_wsl_output,
    parse_guest_list,
    resolve_guest_name,
    write_file,
)

LISTING = """  NAME            STATE           VERSION
* Ubuntu          Running         2
  Arch            Stopped         2
"""


class Recorder:
    def __init__(self, results=None):
        self.calls = []
        self.results = list(results or [])

    def __call__(self, argv, **kwargs):
        self.calls.append((list(argv), kwargs))
        if self.results:
            r = self.results.pop(0)
            if isinstance(r, Exception):
                raise r
            return r
        return CmdResult(argv=list(argv), returncode=0, stdout_bytes=b"", stderr="")


def test_decode_utf16_listing():
    raw = ("\ufeff" + LISTING.replace("\n", "\r\n")).encode("utf-16-le")
    assert decode_wsl_output(raw) == LISTING


def test_parse_guest_list():
    guests = parse_guest_list(LISTING)
    assert guests == [
        GuestInfo(name="Ubuntu", state="Running", version="2", default=True),
        GuestInfo(name="Arch", state="Stopped", version="2", default=False),
    ]
    assert guests[0].running and not guests[1].running


def test_resolve_prefers_exact_then_prefix():
    guests = parse_guest_list(LISTING + "  archlinux       Stopped         2\n")
    assert resolve_guest_name("ARCHLINUX", guests) == "archlinux"
    assert resolve_guest_name("arch", guests) == "Arch"
    assert resolve_guest_name("debian", guests) is None


def test_exec_runs_shell_as_root(monkeypatch):
    rec = Recorder()
    monkeypatch.setattr(guest_mod, "run_cmd", rec)
    WslGuest(name="Arch").exec("pacman -Qq", input_bytes=b"x", check=False)
    argv, kwargs = rec.calls[0]
    assert argv == ["wsl.exe", "-d", "Arch", "-u", "root", "--", "sh", "-c", "pacman -Qq"]
    assert kwargs["input_bytes"] == b"x"
    assert kwargs["check"] is False


def test_create_guest_skips_when_registered(monkeypatch):
    listing = CmdResult(argv=[], returncode=0, stdout_bytes=LISTING.encode(), stderr="")
    rec = Recorder([listing])
    monkeypatch.setattr(guest_mod, "run_cmd", rec)
    guest_mod.create_guest("arch")
    assert len(rec.calls) == 1


def test_create_guest_failure(monkeypatch):
    empty = CmdResult(argv=[], returncode=1, stdout_bytes=b"", stderr="")
    rec = Recorder([empty, CommandError(["wsl.exe"], 1, "boom")])
    monkeypatch.setattr(guest_mod, "run_cmd", rec)
    with pytest.raises(GuestCreateError):
        guest_mod.create_guest("archlinux")
    assert rec.calls[1][0] == ["wsl.exe", "--install", "-d", "archlinux", "--no-launch"]


def test_destroy_guest_failure(monkeypatch):
    rec = Recorder([CommandError(["wsl.exe"], 1, "in use")])
    monkeypatch.setattr(guest_mod, "run_cmd", rec)
    with pytest.raises(DestroyError):
        guest_mod.destroy_guest("Arch")
    assert rec.calls[0][0] == ["wsl.exe", "--unregister", "Arch"]


def test_write_file_sends_bytes_on_stdin():
    class G:
        name = "g"

        def __init__(self):
            self.seen = []

        def exec(self, command, *, input_bytes=None, check=True):
            self.seen.append((command, input_bytes))

    g = G()
    write_file(g, "/etc/sudoers.d/x y", b"a\r\nb", mode="0440")
    command, data = g.seen[0]
    assert data == b"a\r\nb"
    assert "cat > '/etc/sudoers.d/x y'" in command
    assert command.endswith("chmod 0440 '/etc/sudoers.d/x y'")


def test_to_guest_path_only_translates_windows_paths():
    class G:
        name = "g"

        def exec(self, command, *, input_bytes=None, check=True):
            return CmdResult(argv=[], returncode=0, stdout_bytes=b"/mnt/c/src/foo\n", stderr="")

    assert guest_mod.to_guest_path(G(), "/already/posix") == "/already/posix"
    assert guest_mod.to_guest_path(G(), "C:\\src\\foo") == "/mnt/c/src/foo"
