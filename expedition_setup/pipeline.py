from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol, Sequence

from .config import ProvisionConfig
from .executor import StepExecutor
from .lib.procwait import ProcessWaiter
from .progress import ProgressReporter
from .state_store import mark_step_completed

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything one provisioning run shares between its steps."""

    config: ProvisionConfig
    state: Dict[str, Any]
    reporter: ProgressReporter
    waiter: ProcessWaiter
    executor: StepExecutor
    persist: Callable[[], None] = field(default=lambda: None)


class Step(Protocol):
    """One stage of the fixed provisioning order."""

    step_id: str

    def run(self, ctx: RunContext) -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]


def run_pipeline(ctx: RunContext, steps: Sequence[Step]) -> PipelineResult:
    """Run steps in order; a FatalFailure propagates and stops the run."""

    ran: List[str] = []
    exe = ctx.state.setdefault("execution", {})

    for step in steps:
        exe["current_step"] = step.step_id
        ctx.persist()

        logger.info("Running step %s", step.step_id)
        step.run(ctx)

        mark_step_completed(ctx.state, step.step_id)
        ran.append(step.step_id)
        ctx.persist()

    exe["current_step"] = None
    ctx.reporter.end()
    return PipelineResult(ran_steps=ran)
