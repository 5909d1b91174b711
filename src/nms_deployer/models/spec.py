"""Resolved deployment specification models."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from nms_deployer.models.components import ComponentKind


class ConnectionSpec(BaseModel):
    """Remote endpoints and credentials the stack ships data to."""

    model_config = ConfigDict(frozen=True)

    metrics_url: str = Field(..., min_length=1, description="Remote-write URL for metrics")
    logs_url: str = Field(..., min_length=1, description="Push URL for logs")
    api_endpoint: str = Field(..., min_length=1, description="Organisation name / API endpoint")
    api_username: str = Field(..., min_length=1)
    api_password: str = Field(..., min_length=1)


class ComponentSpec(BaseModel):
    """One enabled managed component."""

    model_config = ConfigDict(frozen=True)

    kind: ComponentKind
    port: int = Field(..., ge=1, le=65535, description="Host port the component listens on")
    retention_time: Optional[str] = Field(
        None, description="Prometheus TSDB retention (e.g. '15d'), ignored for other kinds"
    )


class ServiceTarget(BaseModel):
    """Externally discovered endpoint scraped by Prometheus."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    label: str
    ip: str
    port: int = Field(..., ge=1, le=65535)
    path: str
    protocol: str
    network: str = Field(
        default="", description="Emitted as a scrape label only for label == 'rpc-node'"
    )


class DeploymentSpec(BaseModel):
    """Desired state built once per operation from the JSON configuration.

    Absence of a component in `components` means it is disabled.
    `services` keeps input order and duplicates.
    """

    model_config = ConfigDict(frozen=True)

    host_label: str = Field(..., min_length=1)
    connection: ConnectionSpec
    components: tuple[ComponentSpec, ...] = ()
    services: tuple[ServiceTarget, ...] = ()

    @field_validator("components")
    @classmethod
    def unique_component_kinds(cls, v: tuple[ComponentSpec, ...]) -> tuple[ComponentSpec, ...]:
        """Ensure each component kind is configured at most once."""
        kinds = [c.kind for c in v]
        if len(kinds) != len(set(kinds)):
            raise ValueError("Component kinds must be unique")
        return v

    def component(self, kind: ComponentKind) -> Optional[ComponentSpec]:
        for component in self.components:
            if component.kind == kind:
                return component
        return None

    def is_enabled(self, kind: ComponentKind) -> bool:
        return self.component(kind) is not None
