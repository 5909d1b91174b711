"""Managed component metadata for the NMS monitoring stack."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ComponentKind(str, Enum):
    """Monitoring components the deployer can enable independently."""

    PROMETHEUS = "prometheus"
    NODE_EXPORTER = "node_exporter"
    PROMTAIL = "promtail"
    CADVISOR = "cadvisor"


@dataclass(frozen=True)
class ComponentInfo:
    """Static facts about one managed component.

    Resolved once from COMPONENTS so that template file names and
    placeholder tokens are never built from user-supplied strings.
    """

    kind: ComponentKind
    display_name: str
    container_name: str
    placeholder_prefix: str
    data_subdir: Optional[str] = None

    @property
    def compose_template(self) -> str:
        return f"{self.kind.value}_compose_template.yml"

    @property
    def config_template(self) -> str:
        return f"{self.kind.value}_conf_template.yml"

    @property
    def artifact_name(self) -> str:
        return f"{self.kind.value}.yml"

    @property
    def name_placeholder(self) -> str:
        return f"{self.placeholder_prefix}_NAME"

    @property
    def port_placeholder(self) -> str:
        return f"{self.placeholder_prefix}_PORT"


COMPONENTS: dict[ComponentKind, ComponentInfo] = {
    ComponentKind.PROMETHEUS: ComponentInfo(
        kind=ComponentKind.PROMETHEUS,
        display_name="Prometheus",
        container_name="nms-prometheus",
        placeholder_prefix="NMS_PROMETHEUS",
        data_subdir="data/prometheus",
    ),
    ComponentKind.NODE_EXPORTER: ComponentInfo(
        kind=ComponentKind.NODE_EXPORTER,
        display_name="Node Exporter",
        container_name="nms-node-exporter",
        placeholder_prefix="NMS_NODE_EXPORTER",
    ),
    ComponentKind.PROMTAIL: ComponentInfo(
        kind=ComponentKind.PROMTAIL,
        display_name="Promtail",
        container_name="nms-promtail",
        placeholder_prefix="NMS_PROMTAIL",
        data_subdir="data/promtail",
    ),
    ComponentKind.CADVISOR: ComponentInfo(
        kind=ComponentKind.CADVISOR,
        display_name="cAdvisor",
        container_name="nms-cadvisor",
        placeholder_prefix="NMS_CADVISOR",
    ),
}

# Artifacts are rendered in this order on every install/reconfigure
RENDER_ORDER: tuple[ComponentKind, ...] = (
    ComponentKind.PROMETHEUS,
    ComponentKind.PROMTAIL,
    ComponentKind.NODE_EXPORTER,
    ComponentKind.CADVISOR,
)

# Components Prometheus scrapes on localhost, in emission order
STATIC_JOB_COMPONENTS: tuple[ComponentKind, ...] = (
    ComponentKind.NODE_EXPORTER,
    ComponentKind.CADVISOR,
)

MANAGED_CONTAINERS: tuple[str, ...] = tuple(
    COMPONENTS[kind].container_name for kind in RENDER_ORDER
)


def component_by_display_name(name: str) -> Optional[ComponentInfo]:
    """Look up a component by its exact `stack_config` name."""
    for info in COMPONENTS.values():
        if info.display_name == name:
            return info
    return None
