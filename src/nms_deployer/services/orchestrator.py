"""Stack orchestration: install, reconfigure and uninstall.

Every operation checks its preconditions before touching anything, then
runs to completion or stops at the first fatal error. Artifacts are rendered
into a staging area inside the tree and only moved into the live tree once
every render has succeeded; nothing else is rolled back.
"""

import shutil
from pathlib import Path
from typing import Callable, Optional, Union
import logging

from nms_deployer.models.components import (
    COMPONENTS,
    RENDER_ORDER,
    STATIC_JOB_COMPONENTS,
    ComponentKind,
)
from nms_deployer.models.errors import (
    OperationCancelled,
    PreconditionError,
    TreeIOError,
)
from nms_deployer.models.spec import DeploymentSpec
from nms_deployer.models.status import DeploymentState
from nms_deployer.services.bundle import (
    BundleProvider,
    RemoteBundleProvider,
    TemplateBundle,
    bundle_workspace,
)
from nms_deployer.services.config_resolver import ConfigResolver
from nms_deployer.services.directory import (
    COMPOSE_DIR,
    CONFIGS_DIR,
    MANAGED_SUFFIX,
    SCRIPTS_DIR,
    DirectoryStateManager,
)
from nms_deployer.services.lifecycle import LifecycleScriptRunner
from nms_deployer.services.renderer import TemplateRenderer, config_substitutions
from nms_deployer.services.runtime_probe import RuntimeProbe
from nms_deployer.services.targets import TargetListGenerator

ConfirmCallback = Callable[[str], bool]


class StackOrchestrator:
    """Drives the deployment tree and containers towards the desired state."""

    def __init__(
        self,
        resolver: Optional[ConfigResolver] = None,
        renderer: Optional[TemplateRenderer] = None,
        targets: Optional[TargetListGenerator] = None,
        directory: Optional[DirectoryStateManager] = None,
        probe: Optional[RuntimeProbe] = None,
        lifecycle: Optional[LifecycleScriptRunner] = None,
        bundle_provider: Optional[BundleProvider] = None,
        confirm: Optional[ConfirmCallback] = None,
    ):
        """Initialize orchestrator.

        Args:
            confirm: Called with a prompt before any mutation; returning
                False cancels the operation. None means always proceed.
        """
        self.logger = logging.getLogger("nms.orchestrator")
        self.resolver = resolver or ConfigResolver()
        self.renderer = renderer or TemplateRenderer()
        self.targets = targets or TargetListGenerator()
        self.directory = directory or DirectoryStateManager()
        self.probe = probe or RuntimeProbe()
        self.lifecycle = lifecycle or LifecycleScriptRunner()
        self.bundle_provider = bundle_provider or RemoteBundleProvider()
        self.confirm = confirm
        self.state = DeploymentState.ABSENT

    @staticmethod
    def resolve_root(install_dir: Union[str, Path]) -> Path:
        """Deployment root for an install directory (`<dir>/nms` unless it already is one)."""
        install_dir = Path(install_dir).expanduser().absolute()
        if install_dir.name.endswith(MANAGED_SUFFIX):
            return install_dir
        return install_dir / MANAGED_SUFFIX

    async def inspect(self, root: Path) -> tuple[DeploymentState, list[str]]:
        """Derive the state of a tree with a single runtime query.

        Returns:
            (state, running managed container names)
        """
        root = Path(root).expanduser().absolute()
        running = await self.probe.running_managed_containers()
        if self.directory.is_valid_deployment(root) and running:
            self.state = DeploymentState.INSTALLED
        else:
            self.state = DeploymentState.ABSENT
        return self.state, running

    async def status(self, root: Path) -> DeploymentState:
        """Derive the state of an existing tree from disk and runtime."""
        state, _ = await self.inspect(root)
        return state

    async def install(self, install_dir: Union[str, Path], config_path: Union[str, Path]) -> Path:
        """Render a fresh deployment and start its containers.

        Returns:
            Root of the created deployment tree

        Raises:
            PreconditionError: If containers run already or the tree exists
            OperationCancelled: If the operator declines
            DeploymentError: Any fatal failure after the checks
        """
        root = self.resolve_root(install_dir)

        if await self.probe.any_managed_container_running():
            raise PreconditionError("NMS container(s) already exist")
        if self.directory.exists(root):
            raise PreconditionError(
                f"An existing NMS directory has been detected at {root}. "
                f"Use the update operation if you want to update your configuration."
            )

        spec = self.resolver.resolve_file(config_path)
        self._confirm(f"Deploying NMS to {root} using {config_path}", "Installation aborted")

        async with bundle_workspace(self.bundle_provider) as bundle:
            # another install may have created root since the checks above
            self.directory.claim_root(root)
            self.directory.create_tree(root)
            with self.directory.lock(root):
                self._render_and_activate(spec, bundle, root, clear_existing=False)
                await self.lifecycle.start_all(root)

        self.state = DeploymentState.INSTALLED
        self.logger.info(f"NMS deployment was successful! Installed at {root}")
        return root

    async def reconfigure(self, root: Union[str, Path], config_path: Union[str, Path]) -> Path:
        """Re-render an existing deployment from a new config and restart it.

        `data/` is never touched.

        Raises:
            PreconditionError: If nothing runs or root is not a deployment tree
            OperationCancelled: If the operator declines
            DeploymentError: Any fatal failure after the checks
        """
        root = Path(root).expanduser().absolute()
        await self._require_installed(root)

        spec = self.resolver.resolve_file(config_path)
        self._confirm(f"Updating NMS installation at {root} using {config_path}", "Configuration update aborted")

        with self.directory.lock(root):
            await self._require_installed(root)
            async with bundle_workspace(self.bundle_provider) as bundle:
                self.state = DeploymentState.RECONFIGURING
                self._render_and_activate(spec, bundle, root, clear_existing=True)
                await self.lifecycle.start_all(root)

        self.state = DeploymentState.INSTALLED
        self.logger.info(f"New configuration was applied successfully to {root}")
        return root

    async def uninstall(self, root: Union[str, Path]) -> None:
        """Stop all containers and delete the deployment tree. Irreversible.

        Raises:
            PreconditionError: If nothing runs, root is not a deployment tree
                or the lifecycle script is missing
            OperationCancelled: If the operator declines
            DeploymentError: Any fatal failure after the checks
        """
        root = Path(root).expanduser().absolute()
        await self._require_installed(root)
        if not self.lifecycle.has_script(root):
            raise PreconditionError(
                f"Invalid directory provided or essential script not found: "
                f"{self.lifecycle.script_path(root)}"
            )

        self._confirm(
            f"This process will stop all NMS containers and delete the NMS directory ({root})",
            "Uninstallation aborted",
        )

        with self.directory.lock(root):
            await self._require_installed(root)
            await self.lifecycle.stop_all(root)
            self.directory.remove_tree(root)

        self.state = DeploymentState.UNINSTALLED
        self.logger.info(f"Successfully uninstalled NMS from {root}")

    async def _require_installed(self, root: Path) -> None:
        if not await self.probe.any_managed_container_running():
            raise PreconditionError("No running NMS docker containers found on this host")
        if not self.directory.is_valid_deployment(root):
            raise PreconditionError(f"No existing NMS directory has been detected at {root}")

    def _confirm(self, prompt: str, declined_message: str) -> None:
        self.logger.info(prompt)
        if self.confirm is not None and not self.confirm(prompt):
            raise OperationCancelled(declined_message)

    def _render_and_activate(
        self,
        spec: DeploymentSpec,
        bundle: TemplateBundle,
        root: Path,
        clear_existing: bool,
    ) -> list[Path]:
        with self.directory.staging_area(root) as staging:
            self.render_artifacts(spec, bundle, root, staging)
            if clear_existing:
                self.directory.clear_mutable_subtrees(root)
            return self.directory.activate(staging, root)

    def render_artifacts(
        self,
        spec: DeploymentSpec,
        bundle: TemplateBundle,
        root: Path,
        staging: Path,
    ) -> list[Path]:
        """Render every artifact of `spec` into `staging`, laid out like the tree.

        Disabled components produce no files and no scrape jobs.

        Returns:
            Staged file paths in creation order
        """
        substitutions = config_substitutions(spec, root)
        staged = []

        for kind in RENDER_ORDER:
            component = spec.component(kind)
            if component is None:
                continue
            info = COMPONENTS[kind]

            compose = self.renderer.render_structural(
                bundle.compose_template(kind),
                kind,
                component.port,
                root,
                extra=substitutions,
                template_name=info.compose_template,
            )
            staged.append(self._stage(compose, staging / COMPOSE_DIR / info.artifact_name, info.compose_template))

            config = self.renderer.render(
                bundle.config_template(kind), substitutions, template_name=info.config_template
            )
            if kind == ComponentKind.PROMETHEUS:
                config = self._append_scrape_jobs(config, spec)
            staged.append(self._stage(config, staging / CONFIGS_DIR / info.artifact_name, info.config_template))

        staged.append(self._copy(bundle.versions_env, staging / COMPOSE_DIR / ".env"))
        for script in bundle.scripts():
            staged.append(self._copy(script, staging / SCRIPTS_DIR / script.name))

        self.logger.info(f"Rendered {len(staged)} artifact(s) into {staging}")
        return staged

    def _append_scrape_jobs(self, doc: str, spec: DeploymentSpec) -> str:
        for kind in STATIC_JOB_COMPONENTS:
            component = spec.component(kind)
            if component is not None:
                doc = self.targets.append_static_job(doc, kind.value, component.port)
        return self.targets.append_service_targets(doc, spec.services)

    def _stage(self, document: str, destination: Path, template_name: str) -> Path:
        self.renderer.ensure_complete(document, template_name)
        return self.renderer.write(document, destination)

    def _copy(self, source: Path, destination: Path) -> Path:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as e:
            raise TreeIOError(
                f"Could not copy {source.name} to {destination.parent}: {e}",
                code="COPY_FAILED",
            )
        return destination
