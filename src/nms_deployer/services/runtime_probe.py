"""Container runtime queries for managed NMS containers."""

import asyncio
import os
import shutil
from typing import Optional
import logging

from nms_deployer.models.components import MANAGED_CONTAINERS
from nms_deployer.models.errors import ExternalToolError, PreconditionError

SUPPORTED_RUNTIMES = ("docker", "podman")


class RuntimeProbe:
    """Reports which managed containers the container runtime is running."""

    PROBE_TIMEOUT = 30  # seconds

    def __init__(self, runtime: Optional[str] = None, timeout: float = PROBE_TIMEOUT):
        """Initialize runtime probe.

        Args:
            runtime: 'docker' or 'podman'; auto-detected when None
            timeout: Max seconds to wait for the runtime to answer
        """
        self.logger = logging.getLogger("nms.runtime")
        self._runtime = runtime
        self.timeout = timeout

    @property
    def runtime(self) -> str:
        """Selected runtime binary.

        Priority: constructor argument > CONTAINER_RUNTIME env var >
        first of docker/podman found on PATH (docker if none is).
        """
        if self._runtime is None:
            env_runtime = os.getenv("CONTAINER_RUNTIME", "").lower()
            if env_runtime in SUPPORTED_RUNTIMES:
                self._runtime = env_runtime
            else:
                self._runtime = next(
                    (r for r in SUPPORTED_RUNTIMES if shutil.which(r)), SUPPORTED_RUNTIMES[0]
                )
            self.logger.debug(f"Using container runtime: {self._runtime}")
        return self._runtime

    def check_requirements(self) -> None:
        """Ensure the tools needed for a deployment are on PATH.

        Raises:
            PreconditionError: Listing every missing command
        """
        required = (self.runtime, f"{self.runtime}-compose", "bash")
        missing = [cmd for cmd in required if shutil.which(cmd) is None]
        if missing:
            raise PreconditionError(
                f"Missing requirement(s) for deployment: {' '.join(missing)}"
            )

    async def running_managed_containers(self) -> list[str]:
        """List managed containers currently running, in managed order.

        Raises:
            ExternalToolError: If the runtime exits non-zero or times out
        """
        command = [self.runtime, "ps", "--format", "{{.Names}}"]
        self.logger.debug(f"Querying runtime: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(f"Could not run {self.runtime}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExternalToolError(
                f"{self.runtime} ps did not answer within {self.timeout}s",
                code="RUNTIME_TIMEOUT",
            )

        if process.returncode != 0:
            raise ExternalToolError(
                f"{self.runtime} ps failed: exit code {process.returncode}, "
                f"stderr: {stderr.decode().strip()}",
                returncode=process.returncode,
                stderr=stderr.decode(),
            )

        names = {line.strip() for line in stdout.decode().splitlines() if line.strip()}
        running = [name for name in MANAGED_CONTAINERS if name in names]
        self.logger.info(f"Running NMS containers: {running or 'none'}")
        return running

    async def any_managed_container_running(self) -> bool:
        return bool(await self.running_managed_containers())
