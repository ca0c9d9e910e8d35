import os
import stat
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from pgreconcile.core.errors import ExecutionError
from pgreconcile.host.base import CommandResult
from pgreconcile.host.local import (
    LocalFilesystem,
    LocalPackageManager,
    LocalProcessExecutor,
    SystemdServiceManager,
)
from pgreconcile.platform import HostFacts, pgdg_repository


##### LocalFilesystem #####


def test_create_directory_with_parents_and_mode(tmp_path):
    fs = LocalFilesystem()
    path = str(tmp_path / "data" / "pg")

    assert fs.create_directory(path, mode=0o700)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o700
    assert not fs.create_directory(path, mode=0o700)


def test_create_directory_corrects_mode(tmp_path):
    fs = LocalFilesystem()
    path = tmp_path / "pg"
    path.mkdir(mode=0o755)
    os.chmod(path, 0o755)

    assert fs.create_directory(str(path), mode=0o700)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o700


def test_create_directory_over_file_fails(tmp_path):
    path = tmp_path / "pg"
    path.write_text("not a dir")

    with pytest.raises(ExecutionError):
        LocalFilesystem().create_directory(str(path))


def test_create_directory_unknown_owner_fails(tmp_path):
    with pytest.raises(ExecutionError):
        LocalFilesystem().create_directory(str(tmp_path / "pg"), owner="no-such-user-pgreconcile")


def test_write_file_reports_content_changes(tmp_path):
    fs = LocalFilesystem()
    path = str(tmp_path / "etc" / "unit.service")

    assert fs.write_file(path, b"one\n", mode=0o644)
    assert not fs.write_file(path, b"one\n", mode=0o644)
    assert fs.write_file(path, b"two\n", mode=0o644)
    with open(path, "rb") as f:
        assert f.read() == b"two\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644


def test_write_file_leaves_no_temp_files(tmp_path):
    fs = LocalFilesystem()
    fs.write_file(str(tmp_path / "unit.service"), b"content")
    fs.write_file(str(tmp_path / "unit.service"), b"changed")

    assert os.listdir(tmp_path) == ["unit.service"]


def test_exists(tmp_path):
    fs = LocalFilesystem()
    (tmp_path / "PG_VERSION").write_text("16\n")

    assert fs.exists(str(tmp_path / "PG_VERSION"))
    assert not fs.exists(str(tmp_path / "missing"))


##### LocalProcessExecutor #####


def test_executor_runs_as_other_user_through_runuser():
    executor = LocalProcessExecutor(timeout=5)
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="ok\n", stderr="")

    with patch("pgreconcile.host.local.subprocess.run", return_value=completed) as mock_run, \
            patch.object(LocalProcessExecutor, "_current_user", return_value="root"):
        result = executor.run(["psql", "-c", "SELECT 1"], as_user="postgres", input="secret")

    assert result == CommandResult(0, "ok\n", "")
    argv = mock_run.call_args.args[0]
    assert argv == ["runuser", "-u", "postgres", "--", "psql", "-c", "SELECT 1"]
    assert mock_run.call_args.kwargs["input"] == "secret"
    assert mock_run.call_args.kwargs["timeout"] == 5


def test_executor_skips_runuser_for_current_user():
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")

    with patch("pgreconcile.host.local.subprocess.run", return_value=completed) as mock_run, \
            patch.object(LocalProcessExecutor, "_current_user", return_value="postgres"):
        LocalProcessExecutor().run("echo hi", as_user="postgres")

    assert mock_run.call_args.args[0] == ["sh", "-c", "echo hi"]


def test_executor_raises_with_captured_output():
    completed = subprocess.CompletedProcess(args=[], returncode=100, stdout="", stderr="E: Unable to locate package\n")

    with patch("pgreconcile.host.local.subprocess.run", return_value=completed):
        with pytest.raises(ExecutionError) as exc_info:
            LocalProcessExecutor().run(["apt-get", "install", "-y", "nope"])

    assert exc_info.value.exit_status == 100
    assert "Unable to locate package" in exc_info.value.output


def test_executor_unchecked_returns_failure():
    completed = subprocess.CompletedProcess(args=[], returncode=3, stdout="", stderr="")

    with patch("pgreconcile.host.local.subprocess.run", return_value=completed):
        result = LocalProcessExecutor().run(["systemctl", "is-active", "x"], check=False)

    assert not result.ok


def test_executor_missing_binary():
    with patch("pgreconcile.host.local.subprocess.run", side_effect=FileNotFoundError("no such file")):
        with pytest.raises(ExecutionError):
            LocalProcessExecutor().run(["initdb"])


def test_executor_timeout():
    with patch("pgreconcile.host.local.subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="x", timeout=1)):
        with pytest.raises(ExecutionError):
            LocalProcessExecutor(timeout=1).run(["sleep", "10"])


##### LocalPackageManager #####


def _apt_manager(results):
    executor = MagicMock()
    executor.run.side_effect = results
    filesystem = MagicMock()
    facts = HostFacts(family="debian", distro_id="debian", codename="bookworm", major_version="12")
    with patch("pgreconcile.host.local.shutil.which", return_value=None):
        manager = LocalPackageManager(executor, filesystem, facts)
    return manager, executor, filesystem


def test_apt_install_skips_installed_package():
    manager, executor, _ = _apt_manager([CommandResult(0, "install ok installed")])

    assert not manager.install("postgresql-16")
    assert executor.run.call_count == 1


def test_apt_install_missing_package():
    manager, executor, _ = _apt_manager([CommandResult(1, "", "no packages found"), CommandResult(0)])

    assert manager.install("postgresql-16")
    assert executor.run.call_args.args[0] == [
        "env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "-q", "postgresql-16",
    ]


def test_apt_repository_downloads_key_and_updates_on_change():
    manager, executor, filesystem = _apt_manager([CommandResult(0), CommandResult(0)])
    filesystem.exists.return_value = False
    filesystem.write_file.return_value = True

    assert manager.configure_repository(pgdg_repository("debian", "bookworm", "16"))

    commands = [call.args[0] for call in executor.run.call_args_list]
    assert commands[0][:3] == ["curl", "-fsSL", "-o"]
    assert commands[1][-2:] == ["update", "-q"]


def test_apt_repository_unchanged_does_not_update():
    manager, executor, filesystem = _apt_manager([])
    filesystem.exists.return_value = True
    filesystem.write_file.return_value = False

    assert not manager.configure_repository(pgdg_repository("debian", "bookworm", "16"))
    executor.run.assert_not_called()


def test_rhel8_repository_disables_distribution_module():
    executor = MagicMock()
    filesystem = MagicMock()
    filesystem.write_file.return_value = True
    facts = HostFacts(family="rhel", distro_id="rocky", major_version="8")
    with patch("pgreconcile.host.local.shutil.which", return_value="/usr/bin/dnf"):
        manager = LocalPackageManager(executor, filesystem, facts)

    manager.configure_repository(pgdg_repository("rhel", None, "16"))

    executor.run.assert_called_once_with(["dnf", "-qy", "module", "disable", "postgresql"])


def test_rpm_is_installed_uses_rpm_query():
    executor = MagicMock()
    executor.run.return_value = CommandResult(0, "postgresql16-server-16.2-1PGDG.rhel9.x86_64\n")
    with patch("pgreconcile.host.local.shutil.which", return_value="/usr/bin/dnf"):
        manager = LocalPackageManager(executor, MagicMock(), HostFacts(family="rhel", distro_id="rocky"))

    assert manager.is_installed("postgresql16-server")
    executor.run.assert_called_once_with(["rpm", "-q", "postgresql16-server"], check=False)


##### SystemdServiceManager #####


def test_enable_and_start_only_when_needed():
    executor = MagicMock()
    executor.run.side_effect = [
        CommandResult(1),  # is-enabled
        CommandResult(0),  # enable
        CommandResult(0),  # is-active
    ]
    services = SystemdServiceManager(executor)

    assert services.enable("postgresql-16")
    assert not services.start("postgresql-16")

    commands = [call.args[0] for call in executor.run.call_args_list]
    assert commands == [
        ["systemctl", "is-enabled", "--quiet", "postgresql-16"],
        ["systemctl", "enable", "postgresql-16"],
        ["systemctl", "is-active", "--quiet", "postgresql-16"],
    ]


def test_status_restart_reload_daemon_reload():
    executor = MagicMock()
    executor.run.return_value = CommandResult(0, "active (running)")
    services = SystemdServiceManager(executor)

    assert services.status("postgresql").stdout == "active (running)"
    assert services.restart("postgresql")
    assert services.reload("postgresql")
    services.daemon_reload()

    commands = [call.args[0] for call in executor.run.call_args_list]
    assert commands[1:] == [
        ["systemctl", "restart", "postgresql"],
        ["systemctl", "reload", "postgresql"],
        ["systemctl", "daemon-reload"],
    ]
