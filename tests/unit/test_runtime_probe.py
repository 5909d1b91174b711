"""Unit tests for RuntimeProbe."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from nms_deployer.models.errors import ExternalToolError, PreconditionError
from nms_deployer.services.runtime_probe import RuntimeProbe


def make_process(stdout=b"", stderr=b"", returncode=0):
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    return process


@pytest.mark.unit
class TestRuntimeProbe:
    """Test RuntimeProbe with a mocked container runtime."""

    @pytest.fixture
    def probe(self):
        return RuntimeProbe(runtime="docker")

    @pytest.mark.asyncio
    async def test_running_managed_containers(self, probe):
        """Test only managed names are reported, in managed order."""
        # Arrange
        process = make_process(stdout=b"nms-promtail\nredis\nnms-prometheus\n")

        with patch("asyncio.create_subprocess_exec", return_value=process) as mock_exec:
            # Act
            running = await probe.running_managed_containers()

        # Assert
        assert running == ["nms-prometheus", "nms-promtail"]
        assert mock_exec.call_args.args == ("docker", "ps", "--format", "{{.Names}}")

    @pytest.mark.asyncio
    async def test_names_must_match_exactly(self, probe):
        process = make_process(stdout=b"nms-prometheus-old\nmy-nms-cadvisor\n")

        with patch("asyncio.create_subprocess_exec", return_value=process):
            assert await probe.running_managed_containers() == []
            assert not await probe.any_managed_container_running()

    @pytest.mark.asyncio
    async def test_any_managed_container_running(self, probe):
        process = make_process(stdout=b"nms-cadvisor\n")

        with patch("asyncio.create_subprocess_exec", return_value=process):
            assert await probe.any_managed_container_running()

    @pytest.mark.asyncio
    async def test_runtime_failure(self, probe):
        process = make_process(stderr=b"Cannot connect to the Docker daemon", returncode=1)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(ExternalToolError) as exc_info:
                await probe.running_managed_containers()

        assert exc_info.value.returncode == 1
        assert "Docker daemon" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_runtime_not_executable(self, probe):
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("docker")):
            with pytest.raises(ExternalToolError, match="Could not run docker"):
                await probe.running_managed_containers()

    @pytest.mark.asyncio
    async def test_runtime_timeout_kills_process(self):
        """Test a hung runtime is killed and reported."""
        probe = RuntimeProbe(runtime="podman", timeout=0.01)

        async def hang():
            await asyncio.sleep(10)

        process = make_process()
        process.communicate = hang

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(ExternalToolError, match="RUNTIME_TIMEOUT"):
                await probe.running_managed_containers()

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    def test_runtime_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTAINER_RUNTIME", "Podman")

        assert RuntimeProbe().runtime == "podman"

    def test_runtime_autodetect(self, monkeypatch):
        monkeypatch.delenv("CONTAINER_RUNTIME", raising=False)

        with patch("shutil.which", side_effect=lambda cmd: "/usr/bin/podman" if cmd == "podman" else None):
            assert RuntimeProbe().runtime == "podman"

    def test_runtime_defaults_to_docker(self, monkeypatch):
        monkeypatch.delenv("CONTAINER_RUNTIME", raising=False)

        with patch("shutil.which", return_value=None):
            assert RuntimeProbe().runtime == "docker"

    def test_check_requirements(self, probe):
        with patch("shutil.which", return_value="/usr/bin/x"):
            probe.check_requirements()

    def test_check_requirements_missing(self, probe):
        with patch("shutil.which", side_effect=lambda cmd: None if cmd == "docker" else "/bin/bash"):
            with pytest.raises(PreconditionError, match="docker"):
                probe.check_requirements()

    def test_check_requirements_missing_compose(self, probe):
        """Test the compose tool used by the lifecycle script is required."""
        with patch("shutil.which", side_effect=lambda cmd: None if cmd == "docker-compose" else f"/usr/bin/{cmd}"):
            with pytest.raises(PreconditionError, match="docker-compose"):
                probe.check_requirements()

    def test_check_requirements_podman_compose(self):
        probe = RuntimeProbe(runtime="podman")

        with patch("shutil.which", side_effect=lambda cmd: None if cmd == "podman-compose" else f"/usr/bin/{cmd}"):
            with pytest.raises(PreconditionError, match="podman-compose"):
                probe.check_requirements()
