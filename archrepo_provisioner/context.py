from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable, List

from .config import ProvisionConfig
from .lib.guest import Guest, GuestInfo
from .model import ProvisioningRun

PACMAN_CONF = "/etc/pacman.conf"


@dataclass
class RunContext:
    """Everything a step may touch, passed explicitly instead of module globals."""

    run: ProvisioningRun
    guest: Guest
    cfg: ProvisionConfig
    list_guests: Callable[[], List[GuestInfo]]
    destroy: Callable[[str], None]
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    deadline: float = field(default=float("inf"))

    @property
    def run_dir(self) -> str:
        return str(PurePosixPath(self.cfg.state_root) / self.run.run_id)

    def run_file(self, name: str) -> str:
        return str(PurePosixPath(self.run_dir) / name)

    def remaining(self) -> float:
        return max(0.0, self.deadline - self.clock())
