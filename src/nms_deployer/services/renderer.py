"""Placeholder substitution over compose and config templates.

Substitution semantics are lenient: a (placeholder, value) pair whose
placeholder does not occur in the document is skipped, so one superset of
substitutions serves every component's template. Only the three structural
compose placeholders (container name, port, install path) are mandatory.
"""

import re
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union
import logging

from nms_deployer.models.components import COMPONENTS, RENDER_ORDER, ComponentKind
from nms_deployer.models.errors import (
    MissingPlaceholderError,
    RenderError,
    WriteFailureError,
)
from nms_deployer.models.spec import DeploymentSpec

Substitutions = Sequence[tuple[str, str]]

INSTALL_PATH_PLACEHOLDER = "NMS_INSTALL_PATH"
RETENTION_PLACEHOLDER = "NMS_PROMETHEUS_RETENTION_TIME"

KNOWN_PLACEHOLDERS: frozenset[str] = frozenset(
    [
        "NMS_HOST_LABEL",
        "NMS_METRICS_URL",
        "NMS_LOGS_URL",
        "NMS_API_ENDPOINT",
        "NMS_API_USERNAME",
        "NMS_API_PASSWORD",
        RETENTION_PLACEHOLDER,
        INSTALL_PATH_PLACEHOLDER,
    ]
    + [COMPONENTS[kind].name_placeholder for kind in RENDER_ORDER]
    + [COMPONENTS[kind].port_placeholder for kind in RENDER_ORDER]
)

# Longest first so NMS_PROMETHEUS_PORT never shadows a longer token
_PLACEHOLDER_RE = re.compile(
    r"(?<![A-Z0-9_])("
    + "|".join(sorted(map(re.escape, KNOWN_PLACEHOLDERS), key=len, reverse=True))
    + r")(?![A-Z0-9_])"
)


def config_substitutions(
    spec: DeploymentSpec, install_path: Union[str, Path]
) -> list[tuple[str, str]]:
    """Build the substitution superset applied to every rendered artifact.

    Disabled components contribute an empty port value.
    """
    prometheus = spec.component(ComponentKind.PROMETHEUS)
    retention = prometheus.retention_time if prometheus and prometheus.retention_time else ""

    def port(kind: ComponentKind) -> str:
        component = spec.component(kind)
        return str(component.port) if component else ""

    substitutions = [
        ("NMS_HOST_LABEL", spec.host_label),
        ("NMS_METRICS_URL", spec.connection.metrics_url),
        ("NMS_LOGS_URL", spec.connection.logs_url),
        ("NMS_API_ENDPOINT", spec.connection.api_endpoint),
        ("NMS_API_USERNAME", spec.connection.api_username),
        ("NMS_API_PASSWORD", spec.connection.api_password),
        (RETENTION_PLACEHOLDER, retention),
        ("NMS_PROMETHEUS_PORT", port(ComponentKind.PROMETHEUS)),
        ("NMS_PROMTAIL_PORT", port(ComponentKind.PROMTAIL)),
        ("NMS_NODE_EXPORTER_PORT", port(ComponentKind.NODE_EXPORTER)),
        ("NMS_CADVISOR_PORT", port(ComponentKind.CADVISOR)),
    ]
    substitutions += [
        (COMPONENTS[kind].name_placeholder, COMPONENTS[kind].container_name)
        for kind in RENDER_ORDER
    ]
    substitutions.append((INSTALL_PATH_PLACEHOLDER, str(install_path)))
    return substitutions


def unresolved_placeholders(document: str) -> list[str]:
    """Return known placeholder tokens still present in a document, in order."""
    return _PLACEHOLDER_RE.findall(document)


class TemplateRenderer:
    """Renders template bodies and writes the resulting artifacts."""

    def __init__(self):
        self.logger = logging.getLogger("nms.renderer")

    def render(
        self,
        template: str,
        substitutions: Substitutions,
        template_name: str = "<template>",
    ) -> str:
        """Apply literal substitutions in order, skipping absent placeholders.

        Args:
            template: Template body
            substitutions: Ordered (placeholder, value) pairs
            template_name: Used in log and error messages

        Returns:
            Rendered document
        """
        return self._substitute(template, substitutions, template_name)

    def render_structural(
        self,
        template: str,
        kind: ComponentKind,
        port: int,
        install_path: Union[str, Path],
        extra: Optional[Substitutions] = None,
        template_name: Optional[str] = None,
    ) -> str:
        """Render a component compose template.

        The container name, port and install path placeholders must all be
        present; `extra` substitutions are applied leniently afterwards.

        Raises:
            MissingPlaceholderError: If a structural placeholder is absent
        """
        info = COMPONENTS[kind]
        template_name = template_name or info.compose_template
        structural = [
            (info.name_placeholder, info.container_name),
            (info.port_placeholder, str(port)),
            (INSTALL_PATH_PLACEHOLDER, str(install_path)),
        ]

        for placeholder, _ in structural:
            if placeholder not in template:
                self.logger.error(f"Structural placeholder {placeholder} missing in {template_name}")
                raise MissingPlaceholderError(placeholder, template_name)

        document = self._substitute(template, structural, template_name)
        return self._substitute(document, extra or (), template_name)

    def ensure_complete(self, document: str, template_name: str) -> None:
        """Reject a document destined for activation that still holds known tokens.

        Raises:
            RenderError: If a known placeholder survived rendering
        """
        leftover = unresolved_placeholders(document)
        if leftover:
            raise RenderError(
                f"Unresolved placeholders in {template_name}: {', '.join(sorted(set(leftover)))}",
                code="UNRESOLVED_PLACEHOLDER",
            )

    def write(self, document: str, destination: Path) -> Path:
        """Write a rendered document, creating parent directories.

        Raises:
            WriteFailureError: If the destination cannot be written
        """
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "w", encoding="utf-8", newline="") as f:
                f.write(document)
        except OSError as e:
            self.logger.error(f"Failed to write {destination}: {e}")
            raise WriteFailureError(destination, str(e))

        self.logger.debug(f"Wrote {destination} ({len(document)} chars)")
        return destination

    def _substitute(
        self, document: str, substitutions: Iterable[tuple[str, str]], template_name: str
    ) -> str:
        for placeholder, value in substitutions:
            if placeholder not in document:
                continue
            document = document.replace(placeholder, value)
            self.logger.debug(f"Substituted {placeholder} in {template_name}")
        return document
