"""Set the administrative password exactly once."""

import secrets

from pgreconcile.core.cmd_utils import guarded
from pgreconcile.core.logging import get_logger
from pgreconcile.probes import alter_role_sql, psql_command, user_has_password
from pgreconcile.state import RunContext, StepResult
from pgreconcile.steps.base import Step

logger = get_logger(__name__)

GENERATED_PASSWORD_BYTES = 24


def generate_password() -> str:
    return secrets.token_urlsafe(GENERATED_PASSWORD_BYTES)


def password_managed(step, ctx: RunContext) -> bool:
    return ctx.spec.manages_password


def role_has_password(step, ctx: RunContext) -> bool:
    return user_has_password(ctx.host, ctx.spec, ctx.settings.SERVICE_ACCOUNT)


class CredentialSetter(Step):
    name = "credential_setter"

    # only_if runs first, so an unmanaged password never touches psql
    @guarded(only_if=password_managed, not_if=role_has_password)
    def apply(self, ctx: RunContext) -> StepResult:
        spec = ctx.spec
        password = generate_password() if spec.generate_password else spec.password
        # The SQL goes over stdin so the password stays out of argv and logs
        ctx.host.executor.run(
            psql_command(spec),
            as_user=ctx.settings.SERVICE_ACCOUNT,
            input=alter_role_sql(spec.user, password),
        )
        logger.info("Set role password", role=spec.user, generated=spec.generate_password)
        return self.result(True)
