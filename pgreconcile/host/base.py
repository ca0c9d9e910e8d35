"""
Interfaces of the external collaborators the steps drive.

Every mutating method returns ``True`` when it changed the host and ``False``
when the host was already in the requested state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

Command = Union[str, Sequence[str]]


@dataclass(frozen=True)
class CommandResult:
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class ProcessExecutor(ABC):
    @abstractmethod
    def run(
        self,
        command: Command,
        as_user: Optional[str] = None,
        input: Optional[str] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Run ``command`` (argv list, or a string for ``sh -c``), optionally as another user.

        ``input`` is written to the process' stdin. With ``check`` a non-zero exit
        raises ExecutionError carrying the captured output.
        """


class PackageManager(ABC):
    @abstractmethod
    def is_installed(self, name: str) -> bool: ...

    @abstractmethod
    def install(self, name: str, version: Optional[str] = None) -> bool: ...

    @abstractmethod
    def configure_repository(self, repository) -> bool:
        """Ensure the repository definition and its signing key are present."""


class ServiceManager(ABC):
    @abstractmethod
    def is_enabled(self, name: str) -> bool: ...

    @abstractmethod
    def is_active(self, name: str) -> bool: ...

    @abstractmethod
    def enable(self, name: str) -> bool: ...

    @abstractmethod
    def start(self, name: str) -> bool: ...

    @abstractmethod
    def restart(self, name: str) -> bool: ...

    @abstractmethod
    def reload(self, name: str) -> bool: ...

    @abstractmethod
    def status(self, name: str) -> CommandResult: ...

    @abstractmethod
    def daemon_reload(self) -> None: ...


class Filesystem(ABC):
    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def create_directory(
        self,
        path: str,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        mode: Optional[int] = None,
        recursive: bool = True,
    ) -> bool: ...

    @abstractmethod
    def write_file(
        self,
        path: str,
        content: bytes,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        mode: Optional[int] = None,
    ) -> bool:
        """Atomically replace ``path`` with ``content``; returns whether the content changed."""


class TemplateRenderer(ABC):
    @abstractmethod
    def render(self, template_id: str, variables: Mapping[str, Any]) -> bytes: ...


@dataclass
class Host:
    """The collaborators of one reconciliation run."""

    packages: PackageManager
    services: ServiceManager
    filesystem: Filesystem
    executor: ProcessExecutor
    templates: TemplateRenderer
