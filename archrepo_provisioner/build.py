from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .build_state import ensure_build_defaults, is_current, load_build_state, mark_built, recipe_fingerprint, save_build_state
from .errors import BuildError, ProvisionError
from .lib.artifacts import discover_artifacts, is_artifact
from .lib.command import CommandError, require_tool, run_cmd
from .lib.repo_index import add_to_repo
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)


DEFAULT_OUT_DIR = "out"
DEFAULT_BUILD_LOG = "logs/archrepo-build.log"
DEFAULT_MAKEPKG_FLAGS = ["-cf"]


def find_recipes(root: Path) -> List[Path]:
    """Recipe directories under packages/, then the bundle meta package last."""

    recipes = sorted(p.parent for p in (root / "packages").glob("*/PKGBUILD"))
    bundle = root / "bundle"
    if (bundle / "PKGBUILD").exists():
        recipes.append(bundle)
    return recipes


def build_recipe(recipe_dir: Path, out_dir: Path, *, flags: Sequence[str], dry_run: bool = False) -> List[str]:
    """makepkg one recipe and move what it produced into out_dir."""

    logger.info("Building package in %s", recipe_dir)
    try:
        run_cmd(["makepkg", *flags], cwd=str(recipe_dir), dry_run=dry_run)
    except CommandError as e:
        raise BuildError(recipe_dir.name, returncode=e.returncode) from e

    moved: List[str] = []
    for f in sorted(recipe_dir.iterdir()):
        if f.is_file() and ".pkg.tar" in f.name:
            dst = out_dir / f.name
            if dst.exists():
                dst.unlink()
            shutil.move(str(f), str(dst))
            if is_artifact(f.name):
                moved.append(f.name)
    if not moved and not dry_run:
        logger.warning("makepkg produced no package in %s", recipe_dir)
    return moved


def run_build(
    *,
    root: str,
    out_dir: str,
    state_path: str,
    flags: Sequence[str],
    force: bool,
    dry_run: bool,
) -> List[str]:
    root_p = Path(root)
    out_p = Path(out_dir)
    out_p.mkdir(parents=True, exist_ok=True)

    if not dry_run:
        require_tool("makepkg")

    state = ensure_build_defaults(load_build_state(state_path))
    recipes = find_recipes(root_p)
    if not recipes:
        raise BuildError(str(root_p / "packages"), detail="no PKGBUILD found")

    built: List[str] = []
    for recipe in recipes:
        name = recipe.name
        fp = recipe_fingerprint(recipe)
        if (not force) and is_current(state, recipe=name, fingerprint=fp, out_dir=out_p):
            logger.info("skip %s (unchanged, artifacts present)", name)
            continue
        # Fail fast: the bundle and later recipes may depend on earlier ones.
        artifacts = build_recipe(recipe, out_p, flags=flags, dry_run=dry_run)
        built.extend(artifacts)
        if not dry_run:
            mark_built(state, recipe=name, fingerprint=fp, artifacts=artifacts)
            save_build_state(state_path, state)

    logger.info("All packages built into %s", out_p)
    return built


def run_repo_add(*, repo_dir: str, packages: Sequence[str], out_dir: str, dry_run: bool) -> None:
    pkgs = list(packages) or discover_artifacts(out_dir)
    if not pkgs:
        raise BuildError(out_dir, detail="no packages to add")
    add_to_repo(repo_dir, pkgs, dry_run=dry_run)


def run_clean(*, out_dir: str, dry_run: bool) -> None:
    p = Path(out_dir)
    if dry_run:
        logger.info("Would remove %s", p)
        return
    shutil.rmtree(p, ignore_errors=True)
    logger.info("Removed %s", p)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="archrepo-build")
    p.add_argument("--log", default=DEFAULT_BUILD_LOG)
    p.add_argument("--out", default=DEFAULT_OUT_DIR, help="Directory collecting built packages")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="command")

    b = sub.add_parser("build", help="Build packages/* and bundle/ with makepkg (default)")
    b.add_argument("--root", default=".", help="Directory holding packages/ and bundle/")
    b.add_argument("--state", default=None, help="Build state file (default: <out>/.build_state.json)")
    b.add_argument("--makepkg-flag", action="append", default=None, dest="flags")
    b.add_argument("--force", action="store_true", help="Rebuild even unchanged recipes")

    r = sub.add_parser("repo-add", help="Add packages to a repository directory")
    r.add_argument("repo", help="Repository directory")
    r.add_argument("packages", nargs="*", help="Package files (default: every package in --out)")

    sub.add_parser("clean", help="Remove the output directory")

    args = p.parse_args(argv)
    configure_logging(log_path=args.log, verbose=bool(args.verbose))

    try:
        if args.command == "repo-add":
            run_repo_add(repo_dir=args.repo, packages=args.packages, out_dir=args.out, dry_run=bool(args.dry_run))
        elif args.command == "clean":
            run_clean(out_dir=args.out, dry_run=bool(args.dry_run))
        else:
            run_build(
                root=getattr(args, "root", "."),
                out_dir=args.out,
                state_path=getattr(args, "state", None) or str(Path(args.out) / ".build_state.json"),
                flags=getattr(args, "flags", None) or DEFAULT_MAKEPKG_FLAGS,
                force=bool(getattr(args, "force", False)),
                dry_run=bool(args.dry_run),
            )
    except ProvisionError as e:
        logger.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
