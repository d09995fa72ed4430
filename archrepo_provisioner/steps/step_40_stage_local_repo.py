from __future__ import annotations

import logging
import shlex
from pathlib import PurePosixPath
from typing import List

from ..context import PACMAN_CONF, RunContext
from ..errors import BuildError, InstallError
from ..lib.artifacts import list_guest_artifacts, package_names
from ..lib.command import CommandError
from ..lib.guest import read_file, to_guest_path, write_file
from ..lib.makepkg import ensure_build_user, helper_command, makepkg_command, run_build
from ..lib.pacman import pacman_install, pacman_refresh
from ..lib.pacman_conf import insert_repo_stanza
from ..lib.repo_index import regenerate_guest_index
from ..model import BuildItem, BuildPath, RunState

logger = logging.getLogger(__name__)


class StageLocalRepoStep:
    step_id = "40_stage_local_repo"
    state = RunState.STAGING_LOCAL_REPO

    def _build_item(self, ctx: RunContext, item: BuildItem) -> List[str]:
        guest = ctx.guest
        cfg = ctx.cfg
        workdir = item.workdir(cfg.build_root, ctx.run.run_id)
        q_work = shlex.quote(workdir)

        try:
            source = to_guest_path(guest, item.source)
            guest.exec(f"rm -rf {q_work} && mkdir -p {q_work} && cp -a {shlex.quote(source.rstrip('/'))}/. {q_work}/")
            if cfg.build_user != "root":
                guest.exec(f"chown -R {shlex.quote(cfg.build_user)}: {q_work}")
        except CommandError as e:
            raise BuildError(item.base_name, returncode=e.returncode, detail="staging failed") from e

        if item.path is BuildPath.HELPER_ASSISTED:
            cmd = helper_command(workdir, helper=cfg.helper, env=item.env_map, flags=item.flags, build_user=cfg.build_user)
        else:
            cmd = makepkg_command(workdir, env=item.env_map, flags=item.flags, build_user=cfg.build_user)

        logger.info("Building %s (%s) in %s", item.base_name, item.path.value, workdir)
        r = run_build(guest, cmd)
        if r.returncode != 0:
            raise BuildError(item.base_name, returncode=r.returncode)

        artifacts = list_guest_artifacts(guest, workdir)
        if not artifacts:
            raise BuildError(item.base_name, detail="builder produced no artifacts")
        return artifacts

    def _place(self, ctx: RunContext, src: str, *, move: bool) -> str:
        repo_dir = ctx.run.local_repo.directory
        dst = str(PurePosixPath(repo_dir) / PurePosixPath(src).name)
        verb = "mv -f" if move else "cp -f"
        existed = ctx.guest.exec(f"test -e {shlex.quote(dst)}", check=False).returncode == 0
        ctx.guest.exec(f"mkdir -p {shlex.quote(repo_dir)} && {verb} {shlex.quote(src)} {shlex.quote(dst)}")
        # Rollback deletes only files this run brought into the repository.
        if existed:
            logger.info("Replaced %s (already present before this run; kept on rollback)", dst)
        elif dst not in ctx.run.copied_files:
            ctx.run.copied_files.append(dst)
        return dst

    def run(self, ctx: RunContext) -> None:
        run = ctx.run
        repo = run.local_repo
        placed: List[str] = []

        if not run.build_items and not run.prebuilt:
            logger.info("No local packages to stage")
            return

        if run.build_items:
            ensure_build_user(ctx.guest, ctx.cfg.build_user)

        # Fail fast: a failing item stops the loop; earlier artifacts stay in place.
        for item in run.build_items:
            for artifact in self._build_item(ctx, item):
                try:
                    placed.append(self._place(ctx, artifact, move=True))
                except CommandError as e:
                    raise BuildError(item.base_name, returncode=e.returncode, detail="moving artifact failed") from e

        try:
            for p in run.prebuilt:
                placed.append(self._place(ctx, to_guest_path(ctx.guest, p), move=False))

            # Index once, after every write of this run.
            regenerate_guest_index(ctx.guest, repo.directory, repo.name, sign=repo.sign)

            conf = read_file(ctx.guest, PACMAN_CONF).decode("utf-8")
            new_conf, changed = insert_repo_stanza(
                conf, repo.name, repo.directory, sig_level=repo.sig_level, prepend=repo.prepend
            )
            if changed:
                write_file(ctx.guest, PACMAN_CONF, new_conf.encode("utf-8"))
                logger.info("Added [%s] to %s", repo.name, PACMAN_CONF)
            else:
                logger.info("[%s] already present in %s", repo.name, PACMAN_CONF)

            pacman_refresh(ctx.guest)
        except CommandError as e:
            raise InstallError(f"Local repository setup failed: {e}", returncode=e.returncode) from e

        names = [f"{repo.name}/{n}" for n in package_names(placed)]
        rc = pacman_install(ctx.guest, names, upgrade=False)
        if rc != 0:
            raise InstallError(f"Installing from [{repo.name}] failed (exit {rc})", returncode=rc)
        logger.info("Installed %d local package(s) from [%s]", len(names), repo.name)
