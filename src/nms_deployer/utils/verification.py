"""Template bundle layout verification."""

from pathlib import Path
import logging

from nms_deployer.models.components import COMPONENTS, RENDER_ORDER
from nms_deployer.models.errors import BundleError

VERSIONS_ENV = "versions.env"
CONFIG_TEMPLATES_DIR = "config-templates"
COMPOSE_TEMPLATES_DIR = "docker-compose-templates"
SCRIPTS_DIR = "scripts"
REQUIRED_SCRIPTS = ("nms-service-restart.sh", "nms-service-upgrade.sh")


def required_layout() -> dict[str, list[str]]:
    """Directories of a bundle mapped to the files each must contain."""
    return {
        CONFIG_TEMPLATES_DIR: sorted(COMPONENTS[k].config_template for k in RENDER_ORDER),
        COMPOSE_TEMPLATES_DIR: sorted(COMPONENTS[k].compose_template for k in RENDER_ORDER),
        SCRIPTS_DIR: list(REQUIRED_SCRIPTS),
    }


def missing_bundle_entries(bundle_root: Path) -> list[str]:
    """List missing bundle entries relative to bundle_root.

    A missing directory is reported once, without its files.
    """
    missing = []
    if not (bundle_root / VERSIONS_ENV).is_file():
        missing.append(VERSIONS_ENV)

    for directory, files in required_layout().items():
        if not (bundle_root / directory).is_dir():
            missing.append(f"{directory}/")
            continue
        for name in files:
            if not (bundle_root / directory / name).is_file():
                missing.append(f"{directory}/{name}")

    return missing


def verify_bundle(bundle_root: Path) -> bool:
    """Check that a bundle contains every required template and script.

    Returns:
        True if complete, False otherwise
    """
    logger = logging.getLogger("nms.verification")
    missing = missing_bundle_entries(bundle_root)
    if missing:
        logger.error(f"Bundle at {bundle_root} is incomplete, missing: {', '.join(missing)}")
        return False

    logger.info(f"Bundle layout verified at {bundle_root}")
    return True


def verify_bundle_or_raise(bundle_root: Path) -> None:
    """Verify bundle layout, raise if anything is missing.

    Raises:
        BundleError: Naming the first missing entry
    """
    if not verify_bundle(bundle_root):
        first = missing_bundle_entries(bundle_root)[0]
        raise BundleError(
            f"Missing {first} in {bundle_root}. "
            f"Please ensure you have all the necessary files from the repository."
        )
