"""Lifecycle script invocation for starting and stopping the stack."""

import asyncio
from pathlib import Path
import logging

from nms_deployer.models.errors import ExternalToolError

RESTART_SCRIPT = "nms-service-restart.sh"


class LifecycleScriptRunner:
    """Runs the deployment's restart script; its exit code is the only signal."""

    SCRIPT_TIMEOUT = 600  # seconds, image pulls can be slow

    def __init__(self, timeout: float = SCRIPT_TIMEOUT):
        self.logger = logging.getLogger("nms.lifecycle")
        self.timeout = timeout

    @staticmethod
    def script_path(root: Path) -> Path:
        return root / "scripts" / RESTART_SCRIPT

    def has_script(self, root: Path) -> bool:
        return self.script_path(root).is_file()

    async def start_all(self, root: Path) -> None:
        """(Re)start every deployed container.

        Raises:
            ExternalToolError: If the script fails or times out
        """
        self.logger.info(f"Starting NMS containers from {root}")
        await self._run(root, ["-a"])

    async def stop_all(self, root: Path) -> None:
        """Stop every deployed container.

        Raises:
            ExternalToolError: If the script fails or times out
        """
        self.logger.info(f"Stopping NMS containers from {root}")
        await self._run(root, ["-s", "-a"])

    async def _run(self, root: Path, args: list[str]) -> None:
        script = self.script_path(root)
        command = ["bash", str(script), *args]
        self.logger.debug(f"Running: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(root),
            )
        except OSError as e:
            raise ExternalToolError(f"Could not execute {script}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            self.logger.error(f"{script.name} {' '.join(args)} timed out after {self.timeout}s")
            raise ExternalToolError(
                f"{script.name} did not finish within {self.timeout}s",
                code="SCRIPT_TIMEOUT",
            )

        if stdout:
            self.logger.debug(stdout.decode(errors="replace").rstrip())

        if process.returncode != 0:
            raise ExternalToolError(
                f"{script.name} {' '.join(args)} failed: "
                f"exit code {process.returncode}, stderr: {stderr.decode(errors='replace').strip()}",
                returncode=process.returncode,
                stderr=stderr.decode(errors="replace"),
            )

        self.logger.info(f"{script.name} {' '.join(args)} completed")
