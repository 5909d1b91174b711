"""Deployment tree management on disk.

Tree layout:
    <root>/                  # basename ends with "nms"
    ├── docker-compose/      # <component>.yml + .env      (mutable)
    ├── configs/             # <component>.yml             (mutable)
    ├── data/
    │   ├── prometheus/      # persisted across reconfigure
    │   └── promtail/
    ├── scripts/             # lifecycle scripts           (mutable)
    ├── .nms.lock            # exclusive operation lock
    └── .staging/            # render area, removed after each operation
"""

import fcntl
import os
import shutil
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
import logging

from nms_deployer.models.components import COMPONENTS, RENDER_ORDER
from nms_deployer.models.errors import PreconditionError, TreeIOError

MANAGED_SUFFIX = "nms"
COMPOSE_DIR = "docker-compose"
CONFIGS_DIR = "configs"
DATA_DIR = "data"
SCRIPTS_DIR = "scripts"

EXPECTED_DIRS = (COMPOSE_DIR, CONFIGS_DIR, DATA_DIR, SCRIPTS_DIR)
MUTABLE_DIRS = (COMPOSE_DIR, CONFIGS_DIR, SCRIPTS_DIR)

LOCK_FILE = ".nms.lock"
STAGING_DIR = ".staging"


class DirectoryStateManager:
    """Creates, inspects and clears the managed deployment tree."""

    def __init__(self):
        self.logger = logging.getLogger("nms.directory")

    @staticmethod
    def tree_dirs() -> list[str]:
        """Relative directories making up a fresh tree."""
        data_dirs = [
            COMPONENTS[kind].data_subdir for kind in RENDER_ORDER if COMPONENTS[kind].data_subdir
        ]
        return [COMPOSE_DIR, CONFIGS_DIR, *data_dirs, SCRIPTS_DIR]

    def claim_root(self, root: Path) -> None:
        """Atomically create root itself; fails if anything already sits there.

        Raises:
            PreconditionError: If root already exists
            TreeIOError: If root cannot be created
        """
        try:
            root.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            raise PreconditionError(
                f"An existing NMS directory has been detected at {root}. "
                f"Use the update operation if you want to update your configuration."
            )
        except OSError as e:
            raise TreeIOError(f"Could not create {root}: {e}", code="CREATE_FAILED")
        self.logger.debug(f"Claimed {root}")

    def create_tree(self, root: Path) -> None:
        """Create the fixed subdirectory set under root.

        A failure may leave a partial tree behind.

        Raises:
            TreeIOError: If any directory cannot be created
        """
        for rel in self.tree_dirs():
            try:
                (root / rel).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise TreeIOError(
                    f"Could not create directory structure under {root}: {e}",
                    code="CREATE_FAILED",
                )
        self.logger.info(f"Created directory structure under {root}")

    def exists(self, root: Path) -> bool:
        """Naming-convention check: root is a directory ending in 'nms'."""
        return root.is_dir() and root.name.endswith(MANAGED_SUFFIX)

    def is_valid_deployment(self, root: Path) -> bool:
        """Structural check: every expected child directory exists."""
        for name in EXPECTED_DIRS:
            if not (root / name).is_dir():
                self.logger.debug(f"Missing {name}/ under {root}")
                return False
        return True

    def clear_mutable_subtrees(self, root: Path) -> None:
        """Delete the contents of compose, configs and scripts; never data.

        Raises:
            TreeIOError: If any entry cannot be deleted (partial deletion stays)
        """
        for name in MUTABLE_DIRS:
            target_dir = root / name
            if not target_dir.is_dir():
                continue
            for entry in target_dir.iterdir():
                try:
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                except OSError as e:
                    raise TreeIOError(
                        f"Failed to delete content of {target_dir}: {e}",
                        code="DELETE_FAILED",
                    )
            self.logger.info(f"Cleared {target_dir}")

    def remove_tree(self, root: Path) -> None:
        """Recursively delete the whole deployment tree.

        Raises:
            TreeIOError: If removal fails
        """
        try:
            shutil.rmtree(root)
        except OSError as e:
            raise TreeIOError(
                f"Failed to remove the installation directory {root}: {e}",
                code="DELETE_FAILED",
            )
        self.logger.info(f"Removed {root}")

    @contextmanager
    def lock(self, root: Path) -> Generator[None, None, None]:
        """Hold an exclusive lock on the tree for one operation.

        Raises:
            PreconditionError: If root is gone or another invocation holds the lock
            TreeIOError: If the lock file cannot be opened
        """
        if not root.is_dir():
            raise PreconditionError(f"No existing NMS directory has been detected at {root}")

        lock_path = root / LOCK_FILE
        try:
            lock_fd = os.open(str(lock_path), os.O_CREAT | os.O_WRONLY, 0o600)
        except OSError as e:
            raise TreeIOError(f"Could not open lock file {lock_path}: {e}", code="LOCK_FAILED")
        try:
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise PreconditionError(
                    f"Another operation is already running against {root}"
                )
            self.logger.debug(f"Acquired lock {lock_path}")
            try:
                yield
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)
        finally:
            os.close(lock_fd)

    @contextmanager
    def staging_area(self, root: Path) -> Generator[Path, None, None]:
        """Yield an empty render area inside the tree, removed on exit.

        Raises:
            TreeIOError: If the staging directory cannot be prepared
        """
        staging = root / STAGING_DIR
        try:
            if staging.exists():
                shutil.rmtree(staging)
            staging.mkdir(parents=True)
        except OSError as e:
            raise TreeIOError(
                f"Could not prepare staging directory {staging}: {e}", code="CREATE_FAILED"
            )
        try:
            yield staging
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def activate(self, staging: Path, root: Path) -> list[Path]:
        """Move every staged file to the same relative path in the live tree.

        Returns:
            Final paths of the activated files, in sorted order

        Raises:
            TreeIOError: If a file cannot be moved
        """
        activated = []
        for staged in sorted(p for p in staging.rglob("*") if p.is_file()):
            final = root / staged.relative_to(staging)
            try:
                final.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staged, final)
            except OSError as e:
                raise TreeIOError(
                    f"Could not move {staged.name} to {final.parent}: {e}",
                    code="MOVE_FAILED",
                )
            activated.append(final)

        self.logger.info(f"Activated {len(activated)} file(s) under {root}")
        return activated
