from __future__ import annotations

import logging
from typing import FrozenSet, List, Sequence

from .context import PACMAN_CONF, RunContext
from .errors import RollbackError
from .lib.command import CommandError
from .lib.guest import remove_file, write_file
from .lib.pacman import pacman_query_installed, pacman_remove
from .model import RollbackPlan, compute_rollback_plan

logger = logging.getLogger(__name__)


def _remove_new_packages(ctx: RunContext, packages: Sequence[str]) -> List[str]:
    """Best-effort removal. Returns the packages that could not be removed."""

    if not packages:
        return []
    if pacman_remove(ctx.guest, packages) == 0:
        return []

    # The batch failed; go package by package until no further progress.
    pending = list(packages)
    while pending:
        progressed = False
        for pkg in list(pending):
            try:
                rc = pacman_remove(ctx.guest, [pkg])
            except CommandError as e:
                logger.warning("Removing %s failed: %s", pkg, e)
                continue
            if rc == 0:
                pending.remove(pkg)
                progressed = True
            else:
                logger.warning("Removing %s failed (exit %s)", pkg, rc)
        if not progressed:
            break
    return pending


def plan_rollback(ctx: RunContext) -> RollbackPlan:
    run = ctx.run
    if run.snapshot is None:
        raise RollbackError(["no snapshot; nothing to roll back to"])
    after = pacman_query_installed(ctx.guest)
    try:
        write_file(ctx.guest, ctx.run_file("packages.after"), ("\n".join(sorted(after)) + "\n").encode("utf-8"))
    except CommandError as e:
        logger.warning("Could not record packages.after: %s", e)
    return compute_rollback_plan(
        run.snapshot,
        after,
        run.copied_files,
        run.written_files,
        keep_artifacts=run.local_repo.keep_artifacts_on_rollback,
    )


def apply_rollback(ctx: RunContext) -> None:
    """Undo this run's changes in the guest.

    Every step is attempted even when an earlier one failed; any failure
    raises RollbackError at the end so the caller can escalate.
    """

    run = ctx.run
    failures: List[str] = []

    snapshot = run.snapshot
    if snapshot is None:
        raise RollbackError(["no snapshot; nothing to roll back to"])

    try:
        plan = plan_rollback(ctx)
    except CommandError as e:
        # Without the after-set only package removal is impossible.
        logger.error("Could not read installed packages; skipping package removal: %s", e)
        failures.append(f"query installed packages: {e}")
        plan = compute_rollback_plan(
            snapshot,
            snapshot.installed,
            run.copied_files,
            run.written_files,
            keep_artifacts=run.local_repo.keep_artifacts_on_rollback,
        )

    logger.info(
        "Rollback plan: restore %s, remove %d package(s), delete %d file(s)",
        PACMAN_CONF,
        len(plan.remove_packages),
        len(plan.delete_files),
    )

    try:
        write_file(ctx.guest, PACMAN_CONF, plan.restore_config)
    except CommandError as e:
        logger.error("Restoring %s failed: %s", PACMAN_CONF, e)
        failures.append(f"restore {PACMAN_CONF}: {e}")

    try:
        unremoved = _remove_new_packages(ctx, plan.remove_packages)
    except CommandError as e:
        logger.warning("Package removal failed: %s", e)
        unremoved = list(plan.remove_packages)

    for path in plan.delete_files:
        try:
            remove_file(ctx.guest, path)
        except CommandError as e:
            logger.error("Deleting %s failed: %s", path, e)
            failures.append(f"delete {path}: {e}")

    residual: FrozenSet[str] = frozenset(unremoved)
    missing: FrozenSet[str] = frozenset()
    try:
        now = pacman_query_installed(ctx.guest)
        residual = frozenset(now - snapshot.installed)
        missing = frozenset(snapshot.installed - now)
    except CommandError as e:
        logger.warning("Could not verify package set after rollback: %s", e)

    run.unremoved_packages = sorted(residual)
    run.missing_packages = sorted(missing)
    if residual:
        logger.warning("Packages left behind by rollback: %s", ", ".join(sorted(residual)))
    if missing:
        logger.warning("Packages installed before the run are gone: %s", ", ".join(sorted(missing)))

    if failures:
        raise RollbackError(failures)
    logger.info("Rollback of run %s complete", run.run_id)
