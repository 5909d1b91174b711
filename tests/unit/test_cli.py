"""Unit tests for the nms-deploy command line."""

import logging
import pytest
from unittest.mock import AsyncMock, patch
from click.testing import CliRunner

from nms_deployer.cli import cli
from nms_deployer.models.errors import PreconditionError
from nms_deployer.services.lifecycle import LifecycleScriptRunner
from nms_deployer.services.runtime_probe import RuntimeProbe


def reset_nms_logger():
    """CliRunner swaps stderr per invocation; drop handlers bound to it."""
    lg = logging.getLogger("nms")
    for h in list(lg.handlers):
        h.close()
        lg.removeHandler(h)


@pytest.fixture(autouse=True)
def clean_logger():
    yield
    reset_nms_logger()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_runtime():
    """Patch the container runtime and lifecycle script at class level."""
    with patch.object(RuntimeProbe, "check_requirements") as check, \
         patch.object(
             RuntimeProbe, "any_managed_container_running", new_callable=AsyncMock, return_value=False
         ) as running, \
         patch.object(
             RuntimeProbe, "running_managed_containers", new_callable=AsyncMock, return_value=[]
         ), \
         patch.object(LifecycleScriptRunner, "start_all", new_callable=AsyncMock) as start_all, \
         patch.object(LifecycleScriptRunner, "stop_all", new_callable=AsyncMock) as stop_all:
        yield {
            "check": check,
            "running": running,
            "start_all": start_all,
            "stop_all": stop_all,
        }


def base_args(bundle_dir, tmp_path, *extra):
    return ["--bundle", str(bundle_dir), "--log-file", str(tmp_path / "nms-install.log"), *extra]


@pytest.mark.unit
class TestCli:
    """Test commands end to end with a mocked runtime."""

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("install", "update", "uninstall", "status"):
            assert command in result.output

    def test_install(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        install_dir = tmp_path / "home"
        install_dir.mkdir()

        result = runner.invoke(
            cli,
            base_args(bundle_dir, tmp_path, "--yes", "install", "-d", str(install_dir), "-c", str(config_file)),
        )

        assert result.exit_code == 0, result.output
        assert (install_dir / "nms" / "configs" / "prometheus.yml").is_file()
        mock_runtime["start_all"].assert_awaited_once()
        assert "NMS deployment" in (tmp_path / "nms-install.log").read_text()

    def test_install_declined(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        install_dir = tmp_path / "home"
        install_dir.mkdir()

        result = runner.invoke(
            cli,
            base_args(bundle_dir, tmp_path, "install", "-d", str(install_dir), "-c", str(config_file)),
            input="n\n",
        )

        assert result.exit_code == 0
        assert not (install_dir / "nms").exists()
        mock_runtime["start_all"].assert_not_awaited()

    def test_install_precondition_failure(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        mock_runtime["running"].return_value = True

        result = runner.invoke(
            cli,
            base_args(bundle_dir, tmp_path, "--yes", "install", "-d", str(tmp_path), "-c", str(config_file)),
        )

        assert result.exit_code == 1
        assert "PRECONDITION_FAILED" in (tmp_path / "nms-install.log").read_text()

    def test_install_missing_config(self, runner, mock_runtime, bundle_dir, tmp_path):
        result = runner.invoke(
            cli,
            base_args(
                bundle_dir, tmp_path, "--yes", "install",
                "-d", str(tmp_path), "-c", str(tmp_path / "absent.json"),
            ),
        )

        assert result.exit_code == 1
        assert "MALFORMED_CONFIG" in (tmp_path / "nms-install.log").read_text()

    def test_update_and_uninstall(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        install_dir = tmp_path / "home"
        install_dir.mkdir()
        root = install_dir / "nms"
        args = base_args(bundle_dir, tmp_path, "--yes")

        assert runner.invoke(cli, [*args, "install", "-d", str(install_dir), "-c", str(config_file)]).exit_code == 0
        mock_runtime["running"].return_value = True
        reset_nms_logger()

        result = runner.invoke(cli, [*args, "update", "-d", str(root), "-c", str(config_file)])
        assert result.exit_code == 0, result.output
        assert mock_runtime["start_all"].await_count == 2
        reset_nms_logger()

        result = runner.invoke(cli, [*args, "uninstall", "-d", str(root)])
        assert result.exit_code == 0, result.output
        assert not root.exists()
        mock_runtime["stop_all"].assert_awaited_once()

    def test_uninstall_without_deployment(self, runner, mock_runtime, bundle_dir, tmp_path):
        result = runner.invoke(cli, [*base_args(bundle_dir, tmp_path, "--yes"), "uninstall", "-d", str(tmp_path / "nms")])

        assert result.exit_code == 1

    def test_missing_requirements(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        mock_runtime["check"].side_effect = PreconditionError("Missing requirement(s) for deployment: docker")

        result = runner.invoke(
            cli,
            base_args(bundle_dir, tmp_path, "--yes", "install", "-d", str(tmp_path), "-c", str(config_file)),
        )

        assert result.exit_code == 1

    def test_status(self, runner, mock_runtime, bundle_dir, tmp_path):
        result = runner.invoke(cli, [*base_args(bundle_dir, tmp_path), "status", "-d", str(tmp_path / "nms")])

        assert result.exit_code == 0, result.output
        assert "absent" in result.output

    def test_update_with_unusable_lock_file(self, runner, mock_runtime, bundle_dir, config_file, tmp_path):
        """Test a filesystem failure ends with a coded message and exit code 1."""
        install_dir = tmp_path / "home"
        install_dir.mkdir()
        root = install_dir / "nms"
        args = base_args(bundle_dir, tmp_path, "--yes")
        assert runner.invoke(cli, [*args, "install", "-d", str(install_dir), "-c", str(config_file)]).exit_code == 0
        reset_nms_logger()
        mock_runtime["running"].return_value = True
        (root / ".nms.lock").unlink()
        (root / ".nms.lock").mkdir()

        result = runner.invoke(cli, [*args, "update", "-d", str(root), "-c", str(config_file)])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "LOCK_FAILED" in (tmp_path / "nms-install.log").read_text()

    def test_unwritable_log_file(self, runner, mock_runtime, bundle_dir, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        result = runner.invoke(
            cli,
            ["--bundle", str(bundle_dir), "--log-file", str(blocker / "nms-install.log"), "status"],
        )

        assert result.exit_code == 1
        assert "Could not open log file" in result.output

    def test_status_queries_runtime_once(self, runner, mock_runtime, bundle_dir, tmp_path):
        with patch.object(
            RuntimeProbe, "running_managed_containers", new_callable=AsyncMock, return_value=["nms-promtail"]
        ) as running:
            result = runner.invoke(cli, [*base_args(bundle_dir, tmp_path), "status", "-d", str(tmp_path / "nms")])

        assert result.exit_code == 0, result.output
        assert "running: nms-promtail" in result.output
        running.assert_awaited_once()
