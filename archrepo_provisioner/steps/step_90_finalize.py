from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..context import RunContext
from ..lib.guest import write_file

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "SUCCESS"


class FinalizeStep:
    step_id = "90_finalize"
    # Stays in CreatingUser until the pipeline moves to Success.
    state = None

    def run(self, ctx: RunContext) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        write_file(ctx.guest, ctx.run_file(SUCCESS_MARKER), f"{ctx.run.run_id} {stamp}\n".encode("utf-8"))
        ctx.run.succeeded = True
        logger.info("Run %s marked successful in %s", ctx.run.run_id, ctx.run_dir)
