"""
Read-only checks of host state, and the psql commands they share with the
credential step. Probes are never cached; callers evaluate them right before
the action they guard.
"""

import os
from typing import List, Optional

from pgreconcile.core.errors import ProbeError
from pgreconcile.host.base import Host
from pgreconcile.spec import ServerSpec

INITIALIZED_MARKER = "PG_VERSION"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def quote_ident(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def psql_command(spec: ServerSpec, sql: Optional[str] = None) -> List[str]:
    """psql invocation honoring the connection preferences; SQL read from stdin when ``sql`` is None."""
    cmd = ["psql", "-X", "-q", "-t", "-A", "-v", "ON_ERROR_STOP=1", "-p", str(spec.port)]
    if spec.database:
        cmd += ["-d", spec.database]
    if spec.host:
        cmd += ["-h", spec.host]
    if sql is not None:
        cmd += ["-c", sql]
    return cmd


def has_password_sql(spec: ServerSpec) -> str:
    return f"SELECT 1 FROM pg_authid WHERE rolname = {quote_literal(spec.user)} AND rolpassword IS NOT NULL;"


def alter_role_sql(role: str, password: str) -> str:
    return f"ALTER ROLE {quote_ident(role)} ENCRYPTED PASSWORD {quote_literal(password)};"


def initialized(host: Host, spec: ServerSpec) -> bool:
    """True once initdb has populated the data directory."""
    return host.filesystem.exists(os.path.join(spec.data_directory, INITIALIZED_MARKER))


def user_has_password(host: Host, spec: ServerSpec, service_account: str = "postgres") -> bool:
    """
    Ask the server whether the role already has a password.

    Raises:
        ProbeError: when psql cannot answer, e.g. the server is down
    """
    result = host.executor.run(psql_command(spec, has_password_sql(spec)), as_user=service_account, check=False)
    if not result.ok:
        output = (result.stderr or result.stdout).strip()
        raise ProbeError(f"Cannot determine whether role {spec.user!r} has a password: {output}")
    return result.stdout.strip() == "1"
