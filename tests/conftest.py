import os
from typing import Dict, List, Optional, Tuple

import pytest

from pgreconcile.core.config import Settings
from pgreconcile.core.errors import ExecutionError
from pgreconcile.host.base import (
    CommandResult,
    Filesystem,
    Host,
    PackageManager,
    ProcessExecutor,
    ServiceManager,
)
from pgreconcile.host.templates import Jinja2TemplateRenderer
from pgreconcile.platform import HostFacts, PlatformProfile
from pgreconcile.reconciler import Reconciler
from pgreconcile.spec import build_server_spec
from pgreconcile.state import ReconciliationState, RunContext


class FakeFilesystem(Filesystem):
    """In-memory filesystem; directories map to (owner, group, mode)."""

    def __init__(self):
        self.dirs: Dict[str, Tuple] = {"/": ("root", "root", 0o755)}
        self.files: Dict[str, bytes] = {}
        self.file_meta: Dict[str, Tuple] = {}
        self.writes: List[str] = []

    def exists(self, path):
        return path in self.dirs or path in self.files

    def create_directory(self, path, owner=None, group=None, mode=None, recursive=True):
        changed = False
        if path not in self.dirs:
            parent = os.path.dirname(path)
            if parent not in self.dirs:
                if not recursive:
                    raise ExecutionError(f"parent of {path} missing")
                self.create_directory(parent, "root", "root", 0o755, recursive=True)
            self.dirs[path] = (owner, group, mode)
            return True
        if self.dirs[path] != (owner, group, mode):
            self.dirs[path] = (owner, group, mode)
            changed = True
        return changed

    def write_file(self, path, content, owner=None, group=None, mode=None):
        self.file_meta[path] = (owner, group, mode)
        if self.files.get(path) == content:
            return False
        self.files[path] = content
        self.writes.append(path)
        return True


class FakePackageManager(PackageManager):
    def __init__(self, filesystem: FakeFilesystem):
        self.filesystem = filesystem
        self.installed = set()
        self.install_calls: List[str] = []
        self.fail_on: Optional[str] = None

    def is_installed(self, name):
        return name in self.installed

    def install(self, name, version=None):
        if name == self.fail_on:
            raise ExecutionError(f"No package {name} available.", command=["dnf", "install", "-y", name], exit_status=1, stderr="Error: Unable to find a match")
        if name in self.installed:
            return False
        self.install_calls.append(name)
        self.installed.add(name)
        return True

    def configure_repository(self, repository):
        return self.filesystem.write_file(repository.path, repository.content.encode(), "root", "root", 0o644)


class FakeServiceManager(ServiceManager):
    def __init__(self):
        self.enabled = set()
        self.active = set()
        self.calls: List[Tuple[str, Optional[str]]] = []

    def is_enabled(self, name):
        return name in self.enabled

    def is_active(self, name):
        return name in self.active

    def enable(self, name):
        if name in self.enabled:
            return False
        self.calls.append(("enable", name))
        self.enabled.add(name)
        return True

    def start(self, name):
        if name in self.active:
            return False
        self.calls.append(("start", name))
        self.active.add(name)
        return True

    def restart(self, name):
        self.calls.append(("restart", name))
        self.active.add(name)
        return True

    def reload(self, name):
        self.calls.append(("reload", name))
        return True

    def status(self, name):
        return CommandResult(exit_status=0 if name in self.active else 3)

    def daemon_reload(self):
        self.calls.append(("daemon-reload", None))


class FakeExecutor(ProcessExecutor):
    """Simulates initdb and psql against the fake filesystem."""

    def __init__(self, filesystem: FakeFilesystem):
        self.filesystem = filesystem
        self.calls: List[dict] = []
        self.role_has_password = False
        self.psql_down = False

    def _respond(self, argv, input) -> CommandResult:
        program = os.path.basename(argv[0])
        if program == "initdb":
            data_dir = argv[argv.index("-D") + 1]
            self.filesystem.files[os.path.join(data_dir, "PG_VERSION")] = b"16\n"
            return CommandResult(0, "Success.\n")
        if program == "psql":
            if self.psql_down:
                return CommandResult(2, "", "psql: error: connection to server failed\n")
            if "-c" in argv and "pg_authid" in argv[argv.index("-c") + 1]:
                return CommandResult(0, "1\n" if self.role_has_password else "")
            if input and input.startswith("ALTER ROLE"):
                self.role_has_password = True
                return CommandResult(0, "")
        return CommandResult(0, "")

    def run(self, command, as_user=None, input=None, check=True):
        argv = ["sh", "-c", command] if isinstance(command, str) else list(command)
        self.calls.append({"argv": argv, "as_user": as_user, "input": input})
        result = self._respond(argv, input)
        if check and not result.ok:
            raise ExecutionError("command failed", command=argv, exit_status=result.exit_status, stdout=result.stdout, stderr=result.stderr)
        return result

    def programs(self) -> List[str]:
        return [os.path.basename(call["argv"][0]) for call in self.calls]


class FakeHost(Host):
    pass


@pytest.fixture
def fake_host():
    filesystem = FakeFilesystem()
    return FakeHost(
        packages=FakePackageManager(filesystem),
        services=FakeServiceManager(),
        filesystem=filesystem,
        executor=FakeExecutor(filesystem),
        templates=Jinja2TemplateRenderer(),
    )


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        LOCK_FILE=str(tmp_path / "pgreconcile.lock"),
        SYSTEMD_OVERRIDE_DIR="/etc/systemd/system",
        SERVICE_ACCOUNT="postgres",
    )


@pytest.fixture
def rhel_facts():
    return HostFacts(family="rhel", distro_id="rocky", codename=None, major_version="9")


@pytest.fixture
def debian_facts():
    return HostFacts(family="debian", distro_id="debian", codename="bookworm", major_version="12")


@pytest.fixture
def make_reconciler(fake_host, test_settings):
    """Build a Reconciler over the fake host for the given facts and spec values."""

    def _make(facts, **values):
        spec = build_server_spec(values, facts.family)
        profile = PlatformProfile.from_spec(spec, facts)
        return Reconciler(spec, profile, fake_host, settings=test_settings, lock_path=test_settings.LOCK_FILE)

    return _make


@pytest.fixture
def make_context(fake_host, test_settings):
    """Build a RunContext over the fake host for the given facts and spec values."""

    def _make(facts, **values):
        spec = build_server_spec(values, facts.family)
        return RunContext(
            spec=spec,
            profile=PlatformProfile.from_spec(spec, facts),
            host=fake_host,
            state=ReconciliationState.begin(spec),
            settings=test_settings,
        )

    return _make
