from __future__ import annotations

import logging

from ..context import RunContext
from ..errors import InstallError
from ..lib.pacman import pacman_install
from ..model import RunState

logger = logging.getLogger(__name__)


class InstallPackagesStep:
    step_id = "30_install_packages"
    state = RunState.INSTALLING

    def run(self, ctx: RunContext) -> None:
        packages = ctx.run.packages
        if not packages:
            logger.info("No packages requested")
            return

        # One transaction for the whole list.
        rc = pacman_install(ctx.guest, packages)
        if rc != 0:
            raise InstallError(f"pacman failed installing {len(packages)} package(s) (exit {rc})", returncode=rc)
        logger.info("Installed %s", ",".join(packages))
