"""
Run initdb once for the data directory.

Only rhel-like families need this; the debian packages create their cluster
during installation.
"""

from pgreconcile.core.cmd_utils import guarded
from pgreconcile.core.logging import get_logger
from pgreconcile.probes import initialized
from pgreconcile.state import RunContext, StepResult
from pgreconcile.steps.base import Step

logger = get_logger(__name__)


def initdb_supported(step, ctx: RunContext) -> bool:
    return ctx.profile.initdb_supported


def data_directory_initialized(step, ctx: RunContext) -> bool:
    return initialized(ctx.host, ctx.spec)


class DatabaseInitializer(Step):
    name = "database_initializer"

    @guarded(not_if=data_directory_initialized, only_if=initdb_supported)
    def apply(self, ctx: RunContext) -> StepResult:
        logger.info("Initializing data directory", data_dir=ctx.state["data_dir"])
        ctx.host.executor.run(list(ctx.profile.initdb_command), as_user=ctx.spec.user)
        return self.result(True)
