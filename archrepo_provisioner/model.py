from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, FrozenSet, List, Optional, Tuple


class RunState(str, enum.Enum):
    CREATED = "Created"
    WAITING_RESPONSIVE = "WaitingResponsive"
    SNAPSHOTTING = "Snapshotting"
    INSTALLING = "Installing"
    STAGING_LOCAL_REPO = "StagingLocalRepo"
    CREATING_USER = "CreatingUser"
    SUCCESS = "Success"
    ROLLING_BACK = "RollingBack"
    ROLLED_BACK = "RolledBack"
    DESTROYED = "Destroyed"
    ABORTED = "Aborted"


TERMINAL_STATES = frozenset({RunState.SUCCESS, RunState.ROLLED_BACK, RunState.DESTROYED, RunState.ABORTED})


class BuildPath(str, enum.Enum):
    DIRECT = "direct"
    HELPER_ASSISTED = "helper"


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class BuildItem:
    source: str
    env: Tuple[Tuple[str, str], ...] = ()
    flags: Tuple[str, ...] = ()
    path: BuildPath = BuildPath.DIRECT

    @property
    def base_name(self) -> str:
        name = PurePosixPath(self.source.replace("\\", "/").rstrip("/")).name
        if not name or name in {".", ".."}:
            raise ValueError(f"Build item source has no usable base name: {self.source!r}")
        return name

    @property
    def env_map(self) -> Dict[str, str]:
        return dict(self.env)

    def workdir(self, build_root: str, run_id: str) -> str:
        return str(PurePosixPath(build_root) / run_id / self.base_name)


@dataclass(frozen=True)
class LocalRepoConfig:
    name: str = "localrepo"
    directory: str = "/var/cache/archrepo-provisioner/localrepo"
    sig_level: str = "Optional TrustAll"
    prepend: bool = True
    sign: bool = False
    keep_artifacts_on_rollback: bool = False


@dataclass(frozen=True)
class UserConfig:
    name: str
    password: str
    groups: Tuple[str, ...] = ("wheel",)


@dataclass(frozen=True)
class GuestStateSnapshot:
    config_text: bytes
    installed: FrozenSet[str]
    taken_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class RollbackPlan:
    remove_packages: Tuple[str, ...]
    delete_files: Tuple[str, ...]
    restore_config: bytes


def compute_rollback_plan(
    snapshot: GuestStateSnapshot,
    installed_after: FrozenSet[str],
    copied_files: List[str],
    written_files: List[str],
    *,
    keep_artifacts: bool = False,
) -> RollbackPlan:
    remove = tuple(sorted(set(installed_after) - set(snapshot.installed)))
    files: List[str] = [] if keep_artifacts else list(copied_files)
    files.extend(f for f in written_files if f not in files)
    return RollbackPlan(remove_packages=remove, delete_files=tuple(files), restore_config=snapshot.config_text)


@dataclass
class ProvisioningRun:
    run_id: str
    guest: str
    packages: List[str] = field(default_factory=list)
    build_items: List[BuildItem] = field(default_factory=list)
    prebuilt: List[str] = field(default_factory=list)
    local_repo: LocalRepoConfig = field(default_factory=LocalRepoConfig)
    user: Optional[UserConfig] = None
    state: RunState = RunState.CREATED
    succeeded: bool = False
    snapshot: Optional[GuestStateSnapshot] = None
    copied_files: List[str] = field(default_factory=list)
    written_files: List[str] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    unremoved_packages: List[str] = field(default_factory=list)
    missing_packages: List[str] = field(default_factory=list)

    def transition(self, new_state: RunState) -> None:
        self.state = new_state
        self.history.append(new_state.value)

    def record(self) -> Dict[str, object]:
        """Plain-data view written to the host run record."""

        return {
            "run_id": self.run_id,
            "guest": self.guest,
            "state": self.state.value,
            "succeeded": self.succeeded,
            "history": list(self.history),
            "packages": list(self.packages),
            "build_items": [i.source for i in self.build_items],
            "copied_files": list(self.copied_files),
            "written_files": list(self.written_files),
            "unremoved_packages": list(self.unremoved_packages),
            "missing_packages": list(self.missing_packages),
            "errors": list(self.errors),
            "snapshot_taken_at": self.snapshot.taken_at if self.snapshot else None,
        }
