from __future__ import annotations

import glob
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .model import BuildItem, BuildPath, LocalRepoConfig, UserConfig

DEFAULT_STATE_ROOT = "/var/lib/archrepo-provisioner/runs"
DEFAULT_BUILD_ROOT = "/var/tmp/archrepo-provisioner/build"


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = raw.get(key) or {}
    if not isinstance(v, dict):
        raise ConfigError(f"{key} must be a mapping")
    return v


def _str_list(v: Any, key: str) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    if not isinstance(v, list):
        raise ConfigError(f"{key} must be a list of strings")
    return [str(x).strip() for x in v if str(x).strip()]


def _number(section: Dict[str, Any], key: str, default: float, where: str) -> float:
    # An explicit null means "use the default".
    v = section.get(key)
    if v is None:
        return float(default)
    if isinstance(v, bool):
        raise ConfigError(f"{where}.{key} must be a number, got {v!r}")
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}.{key} must be a number, got {v!r}") from e


def parse_build_item(obj: Any) -> BuildItem:
    """Accepts either a bare source path or a mapping:

      source: /mnt/c/work/packages/foo
      env: {CARCH: x86_64}
      flags: [--nocheck]
      helper: true
    """

    if isinstance(obj, str):
        return BuildItem(source=obj)
    if not isinstance(obj, dict):
        raise ConfigError("build_items entries must be strings or mappings")

    source = str(obj.get("source") or "").strip()
    if not source:
        raise ConfigError("build_items entry requires 'source'")

    env = obj.get("env") or {}
    if not isinstance(env, dict):
        raise ConfigError(f"build_items[{source}].env must be a mapping")

    return BuildItem(
        source=source,
        env=tuple((str(k), str(v)) for k, v in env.items()),
        flags=tuple(_str_list(obj.get("flags"), f"build_items[{source}].flags")),
        path=BuildPath.HELPER_ASSISTED if bool(obj.get("helper", False)) else BuildPath.DIRECT,
    )


@dataclass(frozen=True)
class ProvisionConfig:
    raw: Dict[str, Any]

    # guest

    @property
    def distro(self) -> str:
        return str(_section(self.raw, "guest").get("distro") or "archlinux")

    @property
    def guest_name(self) -> str:
        return str(_section(self.raw, "guest").get("name") or self.distro)

    @property
    def create_guest(self) -> bool:
        return bool(_section(self.raw, "guest").get("create", True))

    @property
    def wsl_exe(self) -> str:
        return str(_section(self.raw, "guest").get("wsl_exe") or "wsl.exe")

    @property
    def responsive_timeout(self) -> float:
        return _number(_section(self.raw, "guest"), "responsive_timeout", 120, "guest")

    @property
    def poll_interval(self) -> float:
        return _number(_section(self.raw, "guest"), "poll_interval", 2, "guest")

    @property
    def poll_jitter(self) -> float:
        return _number(_section(self.raw, "guest"), "poll_jitter", 0, "guest")

    # run

    @property
    def run_id(self) -> Optional[str]:
        v = _section(self.raw, "run").get("id")
        return str(v) if v else None

    @property
    def run_timeout(self) -> float:
        return _number(_section(self.raw, "run"), "timeout", 600, "run")

    @property
    def state_root(self) -> str:
        return str(_section(self.raw, "run").get("state_root") or DEFAULT_STATE_ROOT)

    @property
    def build_root(self) -> str:
        return str(_section(self.raw, "run").get("build_root") or DEFAULT_BUILD_ROOT)

    @property
    def build_user(self) -> str:
        return str(_section(self.raw, "run").get("build_user") or "builder")

    @property
    def helper(self) -> str:
        return str(_section(self.raw, "run").get("helper") or "paru")

    @property
    def sudoers_prefix(self) -> str:
        return str(_section(self.raw, "run").get("sudoers_prefix") or "90-archrepo")

    # content

    @property
    def packages(self) -> List[str]:
        return _str_list(self.raw.get("packages"), "packages")

    @property
    def prebuilt_patterns(self) -> List[str]:
        return _str_list(self.raw.get("prebuilt"), "prebuilt")

    @property
    def recipes_dir(self) -> Optional[str]:
        v = self.raw.get("recipes_dir")
        return str(v) if v else None

    @property
    def build_items(self) -> List[BuildItem]:
        v = self.raw.get("build_items") or []
        if not isinstance(v, list):
            raise ConfigError("build_items must be a list")
        items = [parse_build_item(o) for o in v]
        if self.recipes_dir:
            items.extend(discover_recipes(self.recipes_dir))
        seen: Dict[str, str] = {}
        for it in items:
            other = seen.setdefault(it.base_name, it.source)
            if other != it.source:
                raise ConfigError(f"Two build items share the base name {it.base_name!r}: {other}, {it.source}")
        return items

    @property
    def local_repo(self) -> LocalRepoConfig:
        s = _section(self.raw, "local_repo")
        d = LocalRepoConfig()
        return LocalRepoConfig(
            name=str(s.get("name") or d.name),
            directory=str(s.get("directory") or d.directory),
            sig_level=str(s.get("sig_level") or d.sig_level),
            prepend=bool(s.get("prepend", d.prepend)),
            sign=bool(s.get("sign", d.sign)),
            keep_artifacts_on_rollback=bool(s.get("keep_artifacts_on_rollback", d.keep_artifacts_on_rollback)),
        )

    @property
    def user(self) -> Optional[UserConfig]:
        s = _section(self.raw, "user")
        name = str(s.get("name") or "").strip()
        if not name:
            return None
        password = s.get("password")
        if password is None:
            raise ConfigError("user.password is required when user.name is set")
        groups = _str_list(s.get("groups"), "user.groups") if "groups" in s else ["wheel"]
        return UserConfig(name=name, password=str(password), groups=tuple(groups))


def discover_recipes(recipes_dir: str) -> List[BuildItem]:
    """Every immediate subdirectory holding a PKGBUILD, sorted by name."""

    root = Path(recipes_dir)
    if not root.is_dir():
        raise ConfigError(f"recipes_dir does not exist: {recipes_dir}")
    return [BuildItem(source=str(p.parent)) for p in sorted(root.glob("*/PKGBUILD"))]


def expand_prebuilt(patterns: List[str]) -> List[str]:
    out: List[str] = []
    for pat in patterns:
        for match in sorted(glob.glob(pat)):
            if match not in out:
                out.append(match)
    return out


def load_config(path: Optional[str]) -> ProvisionConfig:
    if not path:
        return ProvisionConfig(raw={})

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("provision config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the provision config") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("provision config must contain a mapping/object")

    return ProvisionConfig(raw=raw)
