"""
Errors raised while reconciling a PostgreSQL server.

The core only defines exceptions; the CLI and the pyinfra deploy decide how
they are reported.
"""

from typing import Optional, Sequence, Union


class PgReconcileError(Exception):
    """Base error for pgreconcile."""


class ConfigurationError(PgReconcileError):
    """Invalid ServerSpec field or unreadable spec file."""


class ProbeError(PgReconcileError):
    """Host state could not be determined. Never interpreted as a negative answer."""


class LockError(PgReconcileError):
    """Another reconciliation run holds the run lock."""


class ExecutionError(PgReconcileError):
    """An OS-level operation (command, filesystem call) failed."""

    def __init__(
        self,
        message: str,
        command: Optional[Union[str, Sequence[str]]] = None,
        exit_status: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        """Captured output of the failed command, stdout first."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)
