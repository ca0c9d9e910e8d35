from abc import ABC, abstractmethod
from typing import Optional, Tuple

from pgreconcile.core.cmd_utils import evaluate_guards
from pgreconcile.core.logging import get_logger
from pgreconcile.state import RunContext, StepResult

logger = get_logger(__name__)


class Step(ABC):
    """
    One idempotent unit of a reconciliation run.

    Subclasses implement ``apply``; guards are attached to it with
    :func:`pgreconcile.core.cmd_utils.guarded` so they can be evaluated on
    their own by :meth:`should_run`.
    """

    name: str = "step"

    @property
    def has_guards(self) -> bool:
        """False for steps that converge on every run and only report drift they corrected."""
        return hasattr(type(self).apply, "__only_if__")

    def should_run(self, ctx: RunContext) -> Tuple[bool, Optional[str]]:
        """Evaluate the guards of ``apply`` without performing the action."""
        return evaluate_guards(type(self).apply, self, ctx)

    @abstractmethod
    def apply(self, ctx: RunContext) -> StepResult: ...

    def result(self, changed: bool) -> StepResult:
        return StepResult(step=self.name, changed=changed)

    def skipped(self, reason: Optional[str]) -> StepResult:
        return StepResult(step=self.name, changed=False, skipped=True, reason=reason)

    def reconcile(self, ctx: RunContext) -> StepResult:
        log = logger.bind(step=self.name)
        log.debug("Reconciling")
        result = self.apply(ctx)
        if not result.skipped:
            log.info("Step finished", changed=result.changed)
        return result
