from pgreconcile.host.base import CommandResult, Host
from pgreconcile.host.local import (
    LocalFilesystem,
    LocalPackageManager,
    LocalProcessExecutor,
    SystemdServiceManager,
)
from pgreconcile.host.templates import Jinja2TemplateRenderer


def local_host(facts, template_source: str = "builtin", timeout=None) -> Host:
    """Collaborators for reconciling the machine we run on."""
    executor = LocalProcessExecutor(timeout=timeout)
    filesystem = LocalFilesystem()
    return Host(
        packages=LocalPackageManager(executor, filesystem, facts),
        services=SystemdServiceManager(executor),
        filesystem=filesystem,
        executor=executor,
        templates=Jinja2TemplateRenderer(template_source),
    )


__all__ = ["CommandResult", "Host", "local_host"]
