"""
PostgreSQL server deployment for pyinfra.

Facts are gathered while the deploy is built, so the initdb and password
operations are only emitted when the facts show they are still needed. On a
first run the server does not exist yet when facts are read; the same guards
are repeated in shell so they hold when the operation executes. Platform-family
guards are static and evaluated here.
"""

import hashlib
import os
import shlex
from io import StringIO
from typing import Any, Dict

from pyinfra import host
from pyinfra.facts.files import File, Sha1File
from pyinfra.facts.server import Command, LinuxDistribution
from pyinfra.operations import apt, dnf, files, server, systemd, yum

from pgreconcile.core.config import load_dotenvs, settings
from pgreconcile.host.templates import UNIT_OVERRIDE_TEMPLATE, Jinja2TemplateRenderer
from pgreconcile.platform import HostFacts, PlatformProfile, host_facts_from_os_release, pgdg_repository
from pgreconcile.probes import INITIALIZED_MARKER, alter_role_sql, has_password_sql, psql_command
from pgreconcile.spec import ServerSpec, build_server_spec, load_spec_file
from pgreconcile.steps.credential_setter import generate_password

SQL_UPLOAD_NAME = "password.sql"
# Printed by the password fact when psql cannot answer, e.g. before the first start
PROBE_UNAVAILABLE = "unavailable"


def spec_values() -> Dict[str, Any]:
    """
    Spec values for the current host.

    ``PGRECONCILE_SPEC_FILE`` (from the environment or the .env files) is read
    first; ``host.data.postgresql`` from the inventory overrides it.
    """
    load_dotenvs()
    values = {}
    spec_file = os.getenv("PGRECONCILE_SPEC_FILE")
    if spec_file:
        values.update(load_spec_file(spec_file))
    values.update(host.data.get("postgresql") or {})
    return values


def current_host_facts() -> HostFacts:
    distro = host.get_fact(LinuxDistribution) or {}
    return host_facts_from_os_release(distro.get("release_meta") or {})


def install_packages(spec: ServerSpec, profile: PlatformProfile):
    """Configure the PGDG repository and install the client and server packages."""
    if spec.setup_repo:
        repository = pgdg_repository(profile.family, profile.codename, spec.version)
        if repository.key_path:
            files.download(
                name="Download PGDG signing key",
                src=repository.key_url,
                dest=repository.key_path,
                user="root",
                group="root",
                mode="644",
            )
        files.put(
            name="Configure PGDG repository",
            src=StringIO(repository.content),
            dest=repository.path,
            user="root",
            group="root",
            mode="644",
        )

    packages = [profile.client_package, profile.server_package]
    if profile.family == "debian":
        apt.packages(
            name="Install PostgreSQL packages",
            packages=packages,
            present=True,
            update=spec.setup_repo,
            cache_time=3600,
        )
    elif profile.family == "amazon" and profile.major_version == "2":
        yum.packages(name="Install PostgreSQL packages", packages=packages, present=True)
    else:
        dnf.packages(name="Install PostgreSQL packages", packages=packages, present=True)


def unit_override_changes(path: str, content: bytes) -> bool:
    """Compare the rendered override with the host's copy before anything runs."""
    remote_sha1 = host.get_fact(Sha1File, path=path)
    return remote_sha1 != hashlib.sha1(content).hexdigest()


def create_server(spec: ServerSpec, profile: PlatformProfile):
    """Data directory, initdb, unit override, service and password, in that order."""
    account = settings.SERVICE_ACCOUNT

    files.directory(
        name="Create PostgreSQL data directory",
        path=spec.data_directory,
        present=True,
        user=account,
        group=account,
        mode="700",
    )

    if profile.initdb_supported:
        marker_path = f"{spec.data_directory}/{INITIALIZED_MARKER}"
        if not host.get_fact(File, path=marker_path):
            marker = shlex.quote(marker_path)
            server.shell(
                name="Initialize PostgreSQL data directory",
                commands=[f"test -f {marker} || {shlex.join(profile.initdb_command)}"],
                _su_user=spec.user,
            )

    unit_changed = False
    if profile.renders_unit_override:
        path = profile.unit_override_path(settings.SYSTEMD_OVERRIDE_DIR)
        content = Jinja2TemplateRenderer(spec.cookbook).render(
            UNIT_OVERRIDE_TEMPLATE,
            {"service_name": profile.service_name, "port": spec.port, "data_dir": spec.data_directory},
        )
        unit_changed = unit_override_changes(path, content)
        files.put(
            name="Render PostgreSQL unit override",
            src=StringIO(content.decode("utf-8")),
            dest=path,
            user="root",
            group="root",
            mode="644",
        )

    systemd.service(
        name="Enable and start PostgreSQL",
        service=f"{profile.service_name}.service",
        running=True,
        enabled=True,
        restarted=unit_changed,
        daemon_reload=unit_changed,
    )

    if spec.manages_password:
        set_password(spec)


def sql_upload_path() -> str:
    return f"{settings.SECRETS_DIR.rstrip('/')}/{SQL_UPLOAD_NAME}"


def role_password_state(spec: ServerSpec) -> str:
    """
    ``"1"`` when the role already has a password, empty when it has none,
    ``PROBE_UNAVAILABLE`` when the server cannot answer yet.
    """
    probe = shlex.join(psql_command(spec, has_password_sql(spec)))
    output = host.get_fact(
        Command,
        command=f"{probe} 2>/dev/null || echo {PROBE_UNAVAILABLE}",
        _su_user=settings.SERVICE_ACCOUNT,
    )
    return (output or "").strip()


def set_password(spec: ServerSpec):
    """
    Upload the ALTER ROLE statement into the service account's private
    directory and run it unless the role already has a password. The file is
    removed when the command exits, whichever branch ran.

    Nothing is emitted when the role already has a password, apart from
    removing a statement left behind by an interrupted deploy.
    """
    account = settings.SERVICE_ACCOUNT
    upload_path = sql_upload_path()

    if role_password_state(spec) == "1":
        if host.get_fact(File, path=upload_path):
            files.file(name="Remove stale password statement", path=upload_path, present=False)
        return

    password = generate_password() if spec.generate_password else spec.password

    files.directory(
        name="Create pgreconcile secrets directory",
        path=settings.SECRETS_DIR,
        present=True,
        user=account,
        group=account,
        mode="700",
    )
    files.put(
        name="Upload password statement",
        src=StringIO(alter_role_sql(spec.user, password)),
        dest=upload_path,
        user=account,
        group=account,
        mode="600",
    )

    probe = shlex.join(psql_command(spec, has_password_sql(spec)))
    alter = shlex.join(psql_command(spec) + ["-f", upload_path])
    cleanup = shlex.quote(f"rm -f {shlex.quote(upload_path)}")
    server.shell(
        name="Set PostgreSQL password",
        commands=[
            f"trap {cleanup} EXIT; "
            f'has_password="$({probe})" || exit 1; '
            f'test "$has_password" = "1" || {alter}'
        ],
        _su_user=account,
    )


def install_postgresql():
    """Install, initialize and start PostgreSQL and set its password."""
    facts = current_host_facts()
    spec = build_server_spec(spec_values(), facts.family)
    profile = PlatformProfile.from_spec(spec, facts)
    install_packages(spec, profile)
    create_server(spec, profile)


def install_postgresql_packages():
    """The ``install`` action only."""
    facts = current_host_facts()
    spec = build_server_spec(spec_values(), facts.family)
    install_packages(spec, PlatformProfile.from_spec(spec, facts))


def create_postgresql_server():
    """The ``create`` action only; packages must already be installed."""
    facts = current_host_facts()
    spec = build_server_spec(spec_values(), facts.family)
    create_server(spec, PlatformProfile.from_spec(spec, facts))
