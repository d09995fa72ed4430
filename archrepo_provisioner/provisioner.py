from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from .config import ProvisionConfig, expand_prebuilt
from .context import RunContext
from .lib.guest import Guest, GuestInfo, WslGuest, destroy_guest, list_guests
from .model import BuildItem, ProvisioningRun, new_run_id
from .pipeline import PipelineResult, run_pipeline
from .rollback import apply_rollback
from .steps import (
    CreateUserStep,
    FinalizeStep,
    InstallPackagesStep,
    SnapshotStep,
    StageLocalRepoStep,
    WaitResponsiveStep,
)

logger = logging.getLogger(__name__)


def build_steps():
    return [
        WaitResponsiveStep(),
        SnapshotStep(),
        InstallPackagesStep(),
        StageLocalRepoStep(),
        CreateUserStep(),
        FinalizeStep(),
    ]


class Provisioner:
    """Drives one ProvisioningRun against one guest.

    Each public method is a single operation of the run; `provision()` chains
    them with rollback and guest destruction on failure.
    """

    def __init__(
        self,
        cfg: ProvisionConfig,
        *,
        guest: Optional[Guest] = None,
        guest_lister: Optional[Callable[[], List[GuestInfo]]] = None,
        guest_destroyer: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        run_id: Optional[str] = None,
    ) -> None:
        self.cfg = cfg
        if guest is None:
            guest = WslGuest(name=cfg.guest_name, wsl_exe=cfg.wsl_exe)

        run = ProvisioningRun(
            run_id=run_id or cfg.run_id or new_run_id(),
            guest=guest.name,
            packages=cfg.packages,
            build_items=cfg.build_items,
            prebuilt=expand_prebuilt(cfg.prebuilt_patterns),
            local_repo=cfg.local_repo,
            user=cfg.user,
        )

        self.ctx = RunContext(
            run=run,
            guest=guest,
            cfg=cfg,
            list_guests=guest_lister or (lambda: list_guests(cfg.wsl_exe)),
            destroy=guest_destroyer or (lambda name: destroy_guest(name, wsl_exe=cfg.wsl_exe)),
            clock=clock,
            sleep=sleep,
        )
        self.ctx.deadline = clock() + cfg.run_timeout

    @property
    def run(self) -> ProvisioningRun:
        return self.ctx.run

    def wait_until_responsive(self, timeout: Optional[float] = None) -> str:
        WaitResponsiveStep(timeout).run(self.ctx)
        return self.ctx.guest.name

    def snapshot(self) -> None:
        SnapshotStep().run(self.ctx)

    def install_packages(self, packages: Optional[List[str]] = None) -> None:
        if packages is not None:
            self.run.packages = list(packages)
        InstallPackagesStep().run(self.ctx)

    def stage_local_repository(
        self,
        prebuilt: Optional[List[str]] = None,
        build_items: Optional[List[BuildItem]] = None,
    ) -> None:
        if prebuilt is not None:
            self.run.prebuilt = list(prebuilt)
        if build_items is not None:
            self.run.build_items = list(build_items)
        StageLocalRepoStep().run(self.ctx)

    def create_user(self) -> None:
        CreateUserStep().run(self.ctx)

    def finalize_success(self) -> None:
        FinalizeStep().run(self.ctx)

    def rollback(self) -> None:
        apply_rollback(self.ctx)

    def destroy_guest(self) -> None:
        logger.warning("Destroying guest %s (irreversible)", self.ctx.guest.name)
        self.ctx.destroy(self.ctx.guest.name)

    def provision(self) -> PipelineResult:
        logger.info("=== Run %s on guest %s ===", self.run.run_id, self.ctx.guest.name)
        return run_pipeline(
            self.ctx,
            build_steps(),
            rollback=lambda ctx: self.rollback(),
            destroy=lambda ctx: self.destroy_guest(),
        )
