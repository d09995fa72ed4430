from __future__ import annotations

from typing import List, Optional, Sequence

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ENVIRONMENT_MISSING = 2
EXIT_GUEST_UNRESPONSIVE = 3
EXIT_PROVISION_FAILED = 4
EXIT_GUEST_DESTROYED = 5
EXIT_DESTROY_FAILED = 6


class ProvisionError(RuntimeError):
    """Base for every failure the run level knows how to classify."""

    exit_code = EXIT_FAILURE


class ConfigError(ProvisionError, ValueError):
    exit_code = EXIT_FAILURE


class HostEnvironmentError(ProvisionError):
    """Required host tooling (wsl.exe, makepkg, ...) is absent."""

    exit_code = EXIT_ENVIRONMENT_MISSING


class GuestCreateError(ProvisionError):
    exit_code = EXIT_PROVISION_FAILED


class GuestTimeoutError(ProvisionError):
    exit_code = EXIT_GUEST_UNRESPONSIVE


class SnapshotError(ProvisionError):
    exit_code = EXIT_PROVISION_FAILED


class InstallError(ProvisionError):
    exit_code = EXIT_PROVISION_FAILED

    def __init__(self, message: str, *, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class BuildError(ProvisionError):
    exit_code = EXIT_PROVISION_FAILED

    def __init__(self, item: str, *, returncode: Optional[int] = None, detail: str = "") -> None:
        msg = f"Build failed for {item}"
        if returncode is not None:
            msg += f" (exit {returncode})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.item = item
        self.returncode = returncode


class UserError(ProvisionError):
    exit_code = EXIT_PROVISION_FAILED


class RollbackError(ProvisionError):
    exit_code = EXIT_GUEST_DESTROYED

    def __init__(self, failures: Sequence[str]) -> None:
        super().__init__("Rollback failed: " + "; ".join(failures))
        self.failures: List[str] = list(failures)


class DestroyError(ProvisionError):
    exit_code = EXIT_DESTROY_FAILED
