from __future__ import annotations

import logging
import random
import subprocess
from typing import Optional

from ..context import RunContext
from ..errors import GuestTimeoutError
from ..lib.guest import resolve_guest_name
from ..model import RunState

logger = logging.getLogger(__name__)


class WaitResponsiveStep:
    step_id = "10_wait_responsive"
    state = RunState.WAITING_RESPONSIVE

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def run(self, ctx: RunContext) -> None:
        cfg = ctx.cfg
        wanted_timeout = self.timeout if self.timeout is not None else cfg.responsive_timeout
        timeout = min(wanted_timeout, ctx.remaining())
        give_up = ctx.clock() + timeout
        wanted = ctx.guest.name
        attempt = 0

        while True:
            attempt += 1
            name = resolve_guest_name(wanted, ctx.list_guests())
            budget = give_up - ctx.clock()
            if name and budget > 0:
                candidate = ctx.guest.with_name(name)
                # A hung wsl.exe must not outlive the wait.
                try:
                    ok = candidate.exec("true", check=False, timeout=budget).returncode == 0
                except subprocess.TimeoutExpired:
                    logger.debug("Guest %s did not answer within %.1fs", name, budget)
                    ok = False
                if ok:
                    ctx.guest = candidate
                    ctx.run.guest = name
                    logger.info("Guest %s responsive after %d attempt(s)", name, attempt)
                    return
                logger.debug("Guest %s listed but not answering yet", name)

            now = ctx.clock()
            if now >= give_up:
                raise GuestTimeoutError(f"Guest {wanted} not responsive within {timeout:.0f}s ({attempt} attempts)")

            delay = cfg.poll_interval
            if cfg.poll_jitter > 0:
                delay += random.uniform(0, cfg.poll_jitter)
            ctx.sleep(min(delay, give_up - now))
