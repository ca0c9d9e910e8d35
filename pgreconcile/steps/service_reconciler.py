"""Render the unit override where needed, then keep the service enabled and running."""

from pgreconcile.core.logging import get_logger
from pgreconcile.host.templates import UNIT_OVERRIDE_TEMPLATE
from pgreconcile.state import RunContext, StepResult
from pgreconcile.steps.base import Step

logger = get_logger(__name__)

UNIT_OVERRIDE_MODE = 0o644


class ServiceReconciler(Step):
    name = "service_reconciler"

    def unit_variables(self, ctx: RunContext) -> dict:
        return {
            "service_name": ctx.profile.service_name,
            "port": ctx.spec.port,
            "data_dir": ctx.state["data_dir"],
        }

    def render_unit_override(self, ctx: RunContext) -> bool:
        """Write the override file; returns whether its content changed."""
        content = ctx.host.templates.render(UNIT_OVERRIDE_TEMPLATE, self.unit_variables(ctx))
        path = ctx.profile.unit_override_path(ctx.settings.SYSTEMD_OVERRIDE_DIR)
        return ctx.host.filesystem.write_file(path, content, owner="root", group="root", mode=UNIT_OVERRIDE_MODE)

    def apply(self, ctx: RunContext) -> StepResult:
        services = ctx.host.services
        service_name = ctx.profile.service_name
        changed = False

        if ctx.profile.renders_unit_override and self.render_unit_override(ctx):
            changed = True
            services.daemon_reload()
            # A stopped service picks the new unit up when it is started below
            if services.is_active(service_name):
                services.restart(service_name)

        if services.enable(service_name):
            changed = True
        if services.start(service_name):
            changed = True

        ctx.state.set("service_name", service_name)
        return self.result(changed)
