"""Collaborators backed by the local machine: subprocess, systemctl, os."""

import grp
import os
import pwd
import shlex
import shutil
import stat
import subprocess
import tempfile
from typing import Optional

from pgreconcile.core.errors import ExecutionError, ProbeError
from pgreconcile.core.logging import get_logger
from pgreconcile.host.base import (
    Command,
    CommandResult,
    Filesystem,
    PackageManager,
    ProcessExecutor,
    ServiceManager,
)
from pgreconcile.platform import HostFacts, Repository

logger = get_logger(__name__)


def _display(command: Command) -> str:
    return command if isinstance(command, str) else shlex.join(command)


class LocalProcessExecutor(ProcessExecutor):
    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout

    @staticmethod
    def _current_user() -> str:
        return pwd.getpwuid(os.geteuid()).pw_name

    def run(self, command, as_user=None, input=None, check=True) -> CommandResult:
        argv = ["sh", "-c", command] if isinstance(command, str) else list(command)
        if as_user and as_user != self._current_user():
            argv = ["runuser", "-u", as_user, "--"] + argv

        # stdin may carry secrets and is never logged
        logger.debug("Running command", command=_display(command), as_user=as_user)
        try:
            proc = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(
                f"Command timed out after {self.timeout}s: {_display(command)}", command=command
            ) from e
        except OSError as e:
            raise ExecutionError(f"Cannot execute {_display(command)}: {e}", command=command) from e

        result = CommandResult(exit_status=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")
        if check and not result.ok:
            raise ExecutionError(
                f"Command failed with exit status {result.exit_status}: {_display(command)}",
                command=command,
                exit_status=result.exit_status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


class LocalFilesystem(Filesystem):
    @staticmethod
    def _stat(path: str) -> Optional[os.stat_result]:
        try:
            return os.stat(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ProbeError(f"Cannot stat {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return self._stat(path) is not None

    @staticmethod
    def _ids(owner: Optional[str], group: Optional[str]):
        try:
            uid = pwd.getpwnam(owner).pw_uid if owner else -1
            gid = grp.getgrnam(group).gr_gid if group else -1
        except KeyError as e:
            raise ExecutionError(f"Unknown user or group: {e}") from e
        return uid, gid

    def _enforce(self, path: str, owner, group, mode) -> bool:
        """Correct ownership and permission bits of ``path``; returns whether anything changed."""
        st = os.stat(path)
        uid, gid = self._ids(owner, group)
        changed = False
        if (uid != -1 and st.st_uid != uid) or (gid != -1 and st.st_gid != gid):
            os.chown(path, uid, gid)
            changed = True
        if mode is not None and stat.S_IMODE(st.st_mode) != mode:
            os.chmod(path, mode)
            changed = True
        return changed

    def create_directory(self, path, owner=None, group=None, mode=None, recursive=True) -> bool:
        try:
            changed = False
            if not self.exists(path):
                if recursive:
                    os.makedirs(path, exist_ok=True)
                else:
                    os.mkdir(path)
                logger.info("Created directory", path=path)
                changed = True
            elif not os.path.isdir(path):
                raise ExecutionError(f"{path} exists and is not a directory")
            if self._enforce(path, owner, group, mode):
                logger.info("Corrected directory ownership or mode", path=path, owner=owner, mode=mode)
                changed = True
            return changed
        except OSError as e:
            raise ExecutionError(f"Cannot create directory {path}: {e}") from e

    def write_file(self, path, content, owner=None, group=None, mode=None) -> bool:
        try:
            current = None
            if self.exists(path):
                with open(path, "rb") as f:
                    current = f.read()

            if current == content:
                if self._enforce(path, owner, group, mode):
                    logger.info("Corrected file ownership or mode", path=path)
                return False

            parent_dir = os.path.dirname(path) or "."
            os.makedirs(parent_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=parent_dir, prefix=f".{os.path.basename(path)}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                self._enforce(tmp_path, owner, group, mode)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            logger.info("Wrote file", path=path, created=current is None)
            return True
        except OSError as e:
            raise ExecutionError(f"Cannot write {path}: {e}") from e


class LocalPackageManager(PackageManager):
    """apt on debian, dnf (or yum where dnf is missing) everywhere else."""

    def __init__(self, executor: ProcessExecutor, filesystem: Filesystem, facts: HostFacts):
        self.executor = executor
        self.filesystem = filesystem
        self.facts = facts
        self.is_apt = facts.family == "debian"
        self.installer = "dnf" if shutil.which("dnf") else "yum"

    def is_installed(self, name: str) -> bool:
        if self.is_apt:
            result = self.executor.run(["dpkg-query", "-W", "-f=${Status}", name], check=False)
            return result.ok and "install ok installed" in result.stdout
        return self.executor.run(["rpm", "-q", name], check=False).ok

    def install(self, name: str, version: Optional[str] = None) -> bool:
        if self.is_installed(name):
            logger.debug("Package already installed", package=name)
            return False

        if self.is_apt:
            target = f"{name}={version}" if version else name
            command = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "-q", target]
        else:
            target = f"{name}-{version}" if version else name
            command = [self.installer, "install", "-y", target]

        logger.info("Installing package", package=target)
        self.executor.run(command)
        return True

    def configure_repository(self, repository: Repository) -> bool:
        changed = False
        if repository.key_path and not self.filesystem.exists(repository.key_path):
            logger.info("Downloading repository key", url=repository.key_url)
            self.executor.run(["curl", "-fsSL", "-o", repository.key_path, repository.key_url])
            changed = True

        if self.filesystem.write_file(repository.path, repository.content.encode(), owner="root", group="root", mode=0o644):
            changed = True
            if self.is_apt:
                self.executor.run(["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "update", "-q"])
            elif self.facts.family == "rhel" and (self.facts.major_version or "0").isdigit() and int(self.facts.major_version) >= 8:
                # The distribution's postgresql module shadows the PGDG packages
                self.executor.run([self.installer, "-qy", "module", "disable", "postgresql"])
        return changed


class SystemdServiceManager(ServiceManager):
    def __init__(self, executor: ProcessExecutor):
        self.executor = executor

    def _systemctl(self, *args: str, check: bool = True) -> CommandResult:
        return self.executor.run(["systemctl", *args], check=check)

    def is_enabled(self, name: str) -> bool:
        return self._systemctl("is-enabled", "--quiet", name, check=False).ok

    def is_active(self, name: str) -> bool:
        return self._systemctl("is-active", "--quiet", name, check=False).ok

    def enable(self, name: str) -> bool:
        if self.is_enabled(name):
            return False
        logger.info("Enabling service", service=name)
        self._systemctl("enable", name)
        return True

    def start(self, name: str) -> bool:
        if self.is_active(name):
            return False
        logger.info("Starting service", service=name)
        self._systemctl("start", name)
        return True

    def restart(self, name: str) -> bool:
        logger.info("Restarting service", service=name)
        self._systemctl("restart", name)
        return True

    def reload(self, name: str) -> bool:
        logger.info("Reloading service", service=name)
        self._systemctl("reload", name)
        return True

    def status(self, name: str) -> CommandResult:
        return self._systemctl("status", "--no-pager", name, check=False)

    def daemon_reload(self) -> None:
        logger.info("Reloading systemd units")
        self._systemctl("daemon-reload")
