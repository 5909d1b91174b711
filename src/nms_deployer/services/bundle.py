"""Template bundle providers and the scoped bundle workspace."""

import asyncio
import shutil
import tarfile
import tempfile
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union
import logging

import aiofiles
import httpx

from nms_deployer.models.components import COMPONENTS, ComponentKind
from nms_deployer.models.errors import BundleError, TreeIOError
from nms_deployer.utils.verification import (
    COMPOSE_TEMPLATES_DIR,
    CONFIG_TEMPLATES_DIR,
    SCRIPTS_DIR,
    VERSIONS_ENV,
    verify_bundle_or_raise,
)

DEFAULT_BUNDLE_URL = (
    "https://github.com/NodeMonitoringService/nms-deployment-files/"
    "archive/refs/heads/main.tar.gz"
)
WORKSPACE_PREFIX = "nms-install."


class TemplateBundle:
    """Read-only view of a fetched deployment-files bundle."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def validate(self) -> None:
        """Raises BundleError if a required template or script is missing."""
        verify_bundle_or_raise(self.root)

    @property
    def versions_env(self) -> Path:
        return self.root / VERSIONS_ENV

    def compose_template_path(self, kind: ComponentKind) -> Path:
        return self.root / COMPOSE_TEMPLATES_DIR / COMPONENTS[kind].compose_template

    def config_template_path(self, kind: ComponentKind) -> Path:
        return self.root / CONFIG_TEMPLATES_DIR / COMPONENTS[kind].config_template

    def compose_template(self, kind: ComponentKind) -> str:
        return self._read(self.compose_template_path(kind))

    def config_template(self, kind: ComponentKind) -> str:
        return self._read(self.config_template_path(kind))

    def scripts(self) -> list[Path]:
        """Script files shipped with the bundle, sorted by name."""
        return sorted(p for p in (self.root / SCRIPTS_DIR).iterdir() if p.is_file())

    @staticmethod
    def _read(path: Path) -> str:
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except OSError as e:
            raise BundleError(f"Could not read template {path}: {e}")


class BundleProvider:
    """Fetches a bundle into a workspace directory."""

    async def fetch(self, workspace: Path) -> Path:
        """Place the bundle under workspace and return its root."""
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


class LocalBundleProvider(BundleProvider):
    """Copies a bundle from a local directory."""

    def __init__(self, source: Union[str, Path]):
        self.logger = logging.getLogger("nms.bundle")
        self.source = Path(source)

    def describe(self) -> str:
        return f"local directory {self.source}"

    async def fetch(self, workspace: Path) -> Path:
        if not self.source.is_dir():
            raise BundleError(f"Bundle directory {self.source} does not exist")

        target = workspace / "nms-deployment-files"
        self.logger.info(f"Copying bundle from {self.source} into {target}")
        try:
            await asyncio.to_thread(shutil.copytree, self.source, target)
        except OSError as e:
            raise BundleError(f"Could not copy bundle from {self.source}: {e}")
        return target


class RemoteBundleProvider(BundleProvider):
    """Downloads the deployment-files archive over HTTPS."""

    def __init__(self, url: str = DEFAULT_BUNDLE_URL, timeout: float = 30.0):
        self.logger = logging.getLogger("nms.bundle")
        self.url = url
        self.timeout = timeout
        self.chunk_size = 64 * 1024

    def describe(self) -> str:
        return self.url

    async def fetch(self, workspace: Path) -> Path:
        archive_path = workspace / "bundle.tar.gz"
        extract_dir = workspace / "extracted"

        self.logger.info(f"Downloading deployment files from {self.url}")
        try:
            await self._download(archive_path)
        except httpx.HTTPError as e:
            self.logger.error(f"Download failed: {e}", exc_info=True)
            raise BundleError(f"Could not download {self.url}: {e}")

        try:
            await asyncio.to_thread(self._extract, archive_path, extract_dir)
        except (tarfile.TarError, OSError) as e:
            raise BundleError(f"Invalid bundle archive from {self.url}: {e}")

        return self._bundle_root(extract_dir)

    async def _download(self, target_path: Path) -> None:
        bytes_downloaded = 0
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            async with client.stream("GET", self.url) as response:
                response.raise_for_status()

                async with aiofiles.open(target_path, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                        await f.write(chunk)
                        bytes_downloaded += len(chunk)

        self.logger.info(f"Downloaded {bytes_downloaded} bytes")

    @staticmethod
    def _extract(archive_path: Path, extract_dir: Path) -> None:
        extract_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "r:gz") as tar:
            if hasattr(tarfile, "data_filter"):
                tar.extractall(extract_dir, filter="data")
            else:
                tar.extractall(extract_dir)

    @staticmethod
    def _bundle_root(extract_dir: Path) -> Path:
        """Archives wrap the bundle in one top-level directory."""
        if (extract_dir / VERSIONS_ENV).exists():
            return extract_dir
        children = [p for p in extract_dir.iterdir() if p.is_dir()]
        if len(children) != 1:
            raise BundleError(
                f"Expected a single top-level directory in bundle archive, found {len(children)}"
            )
        return children[0]


@asynccontextmanager
async def bundle_workspace(
    provider: BundleProvider, tmp_root: Optional[Path] = None
) -> AsyncGenerator[TemplateBundle, None]:
    """Fetch and validate a bundle inside a temporary directory.

    The temporary directory is deleted on every exit path.

    Raises:
        BundleError: If the bundle cannot be fetched or is incomplete
        TreeIOError: If the temporary directory cannot be created
    """
    logger = logging.getLogger("nms.bundle")
    try:
        workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=tmp_root))
    except OSError as e:
        raise TreeIOError(
            f"Could not create temp directory in {tmp_root or tempfile.gettempdir()}: {e}",
            code="CREATE_FAILED",
        )
    logger.debug(f"Created temp directory {workspace}")
    try:
        bundle = TemplateBundle(await provider.fetch(workspace))
        bundle.validate()
        yield bundle
    finally:
        shutil.rmtree(workspace, ignore_errors=True)
        if workspace.exists():
            logger.error(f"Temp directory {workspace} could not be removed.")
        else:
            logger.debug(f"Removed temp directory {workspace}")
