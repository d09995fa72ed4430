from __future__ import annotations

import logging

from ..context import PACMAN_CONF, RunContext
from ..errors import SnapshotError
from ..lib.command import CommandError
from ..lib.guest import read_file, write_file
from ..lib.pacman import pacman_query_installed
from ..model import GuestStateSnapshot, RunState

logger = logging.getLogger(__name__)


class SnapshotStep:
    step_id = "20_snapshot"
    state = RunState.SNAPSHOTTING

    def run(self, ctx: RunContext) -> None:
        guest = ctx.guest
        try:
            conf = read_file(guest, PACMAN_CONF)
            installed = pacman_query_installed(guest)
            write_file(guest, ctx.run_file("pacman.conf.before"), conf)
            write_file(guest, ctx.run_file("packages.before"), ("\n".join(sorted(installed)) + "\n").encode("utf-8"))
        except CommandError as e:
            raise SnapshotError(f"Could not snapshot guest {guest.name}: {e}") from e

        # Set last: rollback is only possible once the whole baseline exists.
        ctx.run.snapshot = GuestStateSnapshot(config_text=conf, installed=installed)
        logger.info("Snapshot stored in %s (%d packages installed)", ctx.run_dir, len(installed))
