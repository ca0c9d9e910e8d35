"""Ensure the PGDG repository and the PostgreSQL packages are installed."""

from pgreconcile.core.logging import get_logger
from pgreconcile.platform import pgdg_repository
from pgreconcile.state import RunContext, StepResult
from pgreconcile.steps.base import Step

logger = get_logger(__name__)


class PackageInstaller(Step):
    name = "package_installer"

    def apply(self, ctx: RunContext) -> StepResult:
        spec, profile, host = ctx.spec, ctx.profile, ctx.host
        changed = False

        if spec.setup_repo:
            repository = pgdg_repository(profile.family, profile.codename, spec.version)
            if host.packages.configure_repository(repository):
                logger.info("Configured package repository", path=repository.path)
                changed = True

        # Client first: the server package depends on it and on rhel it ships psql
        for package in (profile.client_package, profile.server_package):
            if host.packages.install(package):
                changed = True

        return self.result(changed)
