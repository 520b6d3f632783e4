from __future__ import annotations

import logging

from ..pipeline import RunContext

logger = logging.getLogger(__name__)

REBOOT_PROMPT = "\n\n * Please reboot to finish setting up Expedition * \n"


class FinalizeStep:
    step_id = "90_finalize"

    def run(self, ctx: RunContext) -> None:
        # Rebooting is left to the operator.
        logger.info("Provisioning complete; completed steps: %s",
                    (ctx.state.get("execution") or {}).get("completed_steps") or [])
        ctx.reporter.message(REBOOT_PROMPT)
