from unittest.mock import patch

import pytest
import structlog
from typer.testing import CliRunner

from pgreconcile.cli import app, collect_values
from pgreconcile.core.errors import ConfigurationError

runner = CliRunner()


@pytest.fixture
def local_run(make_reconciler, rhel_facts):
    """Route the CLI to a reconciler over the fake host."""
    captured = {}

    def _prepare(values, settings=None):
        captured["values"] = values
        return make_reconciler(rhel_facts, **values)

    # route logs through stdlib logging (not stdout) and keep the logger cache
    # off so loggers are not cached between tests
    structlog.configure(
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    with patch("pgreconcile.cli.prepare_local_run", side_effect=_prepare), \
            patch("pgreconcile.cli.configure_logging") as configure:
        captured["configure_logging"] = configure
        try:
            yield captured
        finally:
            structlog.reset_defaults()


def test_collect_values_overlays_cli_options(tmp_path):
    spec_file = tmp_path / "spec.yml"
    spec_file.write_text("version: '15'\nport: 5432\npassword: generate\n")

    values = collect_values(str(spec_file), port=5433, no_password=True)

    assert values == {"version": "15", "port": 5433, "password": None}


def test_collect_values_rejects_conflicting_password_flags():
    with pytest.raises(ConfigurationError):
        collect_values(None, password="pw", no_password=True)


def test_apply_reports_changes_then_ok(local_run, fake_host):
    first = runner.invoke(app, ["--version", "16", "--no-password", "apply"])
    second = runner.invoke(app, ["--version", "16", "--no-password", "apply"])

    assert first.exit_code == 0, first.output
    assert "changed" in first.output
    assert second.exit_code == 0, second.output
    assert "changed" not in second.output
    assert local_run["values"] == {"version": "16", "password": None}


def test_apply_install_action(local_run, fake_host):
    result = runner.invoke(app, ["--version", "16", "apply", "install"])

    assert result.exit_code == 0, result.output
    assert fake_host.services.calls == []


def test_execution_error_exits_non_zero_with_output(local_run, fake_host):
    fake_host.packages.fail_on = "postgresql16-server"

    result = runner.invoke(app, ["--version", "16", "apply"])

    assert result.exit_code == 1
    assert "Unable to find a match" in result.output


def test_invalid_spec_exits_with_configuration_status(local_run):
    result = runner.invoke(app, ["--port", "70000", "apply"])

    assert result.exit_code == 2
    assert "Invalid server spec" in result.output


def test_plan_marks_steps(local_run, fake_host):
    result = runner.invoke(app, ["--version", "16", "plan"])

    assert result.exit_code == 0, result.output
    assert "credential_setter" in result.output
    assert "ensures" in result.output
    assert fake_host.packages.install_calls == []


def test_show_profile_masks_literal_password(local_run):
    result = runner.invoke(app, ["--version", "16", "--password", "hunter2", "show-profile"])

    assert result.exit_code == 0, result.output
    assert "hunter2" not in result.output
    assert "postgresql-16" in result.output


def test_logging_options_are_applied(local_run):
    result = runner.invoke(app, ["--log-level", "debug", "--json", "--version", "16", "plan"])

    assert result.exit_code == 0, result.output
    local_run["configure_logging"].assert_called_once_with(log_level="debug", use_json=True)
