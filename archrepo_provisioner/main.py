from __future__ import annotations

import argparse
import copy
import logging
import sys
from typing import Any, Dict, Optional

from .config import ProvisionConfig, load_config
from .errors import EXIT_FAILURE, EXIT_OK, ProvisionError
from .lib.command import require_tool
from .lib.guest import create_guest
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .provisioner import Provisioner
from .state_store import record_run
from .summary import build_summary, render_summary

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "provision.yaml"
DEFAULT_STATE_PATH = "build/provision_runs.json"

_OUTCOME_MESSAGES = {
    "success": "Provisioning of {guest} succeeded (run {run_id}).",
    "aborted": "Provisioning of {guest} aborted before any change; guest left as-is (run {run_id}).",
    "rolled_back": "Provisioning of {guest} failed; changes were rolled back and the guest is still usable (run {run_id}).",
    "destroyed": "Provisioning of {guest} failed and rollback did not complete; the guest was DESTROYED (run {run_id}).",
    "destroy_failed": "Provisioning of {guest} failed, rollback failed and the guest could NOT be destroyed; manual cleanup required (run {run_id}).",
}


def apply_overrides(cfg: ProvisionConfig, *, guest: Optional[str], run_id: Optional[str], create: Optional[bool]) -> ProvisionConfig:
    raw: Dict[str, Any] = copy.deepcopy(cfg.raw)
    if guest:
        raw.setdefault("guest", {})["name"] = guest
    if create is not None:
        raw.setdefault("guest", {})["create"] = create
    if run_id:
        raw.setdefault("run", {})["id"] = run_id
    return ProvisionConfig(raw=raw)


def run(
    *,
    config_path: Optional[str],
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    guest: Optional[str] = None,
    run_id: Optional[str] = None,
    create: Optional[bool] = None,
    summary: bool = False,
    summary_format: str = "json",
    verbose: bool = False,
) -> int:
    """Provision one guest (or only describe it with summary=True). Returns the exit code."""

    configure_logging(log_path=log_path, verbose=verbose)

    cfg = apply_overrides(load_config(config_path), guest=guest, run_id=run_id, create=create)

    if summary or bool(cfg.raw.get("dry_run", False)):
        sys.stdout.write(render_summary(build_summary(cfg), summary_format))
        return EXIT_OK

    require_tool(cfg.wsl_exe)
    if cfg.create_guest:
        create_guest(cfg.distro, wsl_exe=cfg.wsl_exe)

    prov = Provisioner(cfg)
    result = None
    try:
        result = prov.provision()
    finally:
        record = prov.run.record()
        record["path_taken"] = result.path_taken if result else "interrupted"
        record_run(state_path, record)

    print(_OUTCOME_MESSAGES.get(result.path_taken, "{guest}: {run_id}").format(guest=prov.run.guest, run_id=prov.run.run_id))
    if result.error is not None:
        print(f"  failed step: {result.failed_step}: {result.error}")
    if prov.run.unremoved_packages:
        print(f"  packages rollback could not remove: {', '.join(prov.run.unremoved_packages)}")
    if prov.run.missing_packages:
        print(f"  packages missing since before the run: {', '.join(prov.run.missing_packages)}")
    return result.exit_code


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="archrepo-provision")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to provision config (yaml)")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to host run record (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to log file")
    p.add_argument("--guest", default=None, help="Guest (WSL distribution) name override")
    p.add_argument("--run-id", default=None, help="Run identifier (default: generated)")
    p.add_argument("--no-create", action="store_true", help="Use an existing guest instead of installing one")
    p.add_argument("--summary", action="store_true", help="Print what would be done and exit without touching the guest")
    p.add_argument("--format", choices=["json", "yaml"], default="json", help="Summary output format")
    p.add_argument("-v", "--verbose", action="store_true", help="Also log guest command output")

    args = p.parse_args(argv)

    try:
        return run(
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            guest=args.guest,
            run_id=args.run_id,
            create=False if args.no_create else None,
            summary=bool(args.summary),
            summary_format=args.format,
            verbose=bool(args.verbose),
        )
    except ProvisionError as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
