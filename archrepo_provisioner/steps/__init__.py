from .step_10_wait_responsive import WaitResponsiveStep
from .step_20_snapshot import SnapshotStep
from .step_30_install_packages import InstallPackagesStep
from .step_40_stage_local_repo import StageLocalRepoStep
from .step_50_create_user import CreateUserStep
from .step_90_finalize import FinalizeStep

__all__ = [
    "WaitResponsiveStep",
    "SnapshotStep",
    "InstallPackagesStep",
    "StageLocalRepoStep",
    "CreateUserStep",
    "FinalizeStep",
]
