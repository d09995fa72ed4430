from __future__ import annotations

import logging
import shlex

from ..context import RunContext
from ..errors import UserError
from ..lib.command import CommandError
from ..lib.guest import write_file
from ..model import RunState

logger = logging.getLogger(__name__)


class CreateUserStep:
    step_id = "50_create_user"
    state = RunState.CREATING_USER

    def run(self, ctx: RunContext) -> None:
        user = ctx.run.user
        if user is None:
            logger.info("No user configured")
            return

        guest = ctx.guest
        q = shlex.quote(user.name)
        sudoers = f"/etc/sudoers.d/{ctx.cfg.sudoers_prefix}-{user.name}"

        try:
            exists = guest.exec(f"id -u {q} >/dev/null 2>&1", check=False).returncode == 0
            if exists:
                logger.info("User %s already exists", user.name)
            else:
                groups = f"-G {shlex.quote(','.join(user.groups))} " if user.groups else ""
                guest.exec(f"useradd -m {groups}-s /bin/bash {q}")

            guest.exec("chpasswd", input_bytes=f"{user.name}:{user.password}\n".encode("utf-8"))

            # A drop-in file per user so removal is a single delete.
            new_file = guest.exec(f"test -e {shlex.quote(sudoers)}", check=False).returncode != 0
            write_file(guest, sudoers, f"{user.name} ALL=(ALL:ALL) ALL\n".encode("utf-8"), mode="0440")
            if new_file:
                ctx.run.written_files.append(sudoers)
        except CommandError as e:
            raise UserError(f"Could not set up user {user.name}: {e}") from e

        logger.info("User %s ready (sudoers drop-in %s)", user.name, sudoers)
