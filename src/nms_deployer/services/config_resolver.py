"""Resolve the JSON deployment configuration into a DeploymentSpec."""

import json
from pathlib import Path
from typing import Any, Optional, Union
import logging

from pydantic import ValidationError

from nms_deployer.models.components import ComponentKind, component_by_display_name
from nms_deployer.models.errors import (
    InvalidFieldError,
    MalformedConfigError,
    MissingFieldError,
)
from nms_deployer.models.spec import (
    ComponentSpec,
    ConnectionSpec,
    DeploymentSpec,
    ServiceTarget,
)


# (JSON key under connection_config, ConnectionSpec field)
CONNECTION_FIELDS = (
    ("metricsUrl", "metrics_url"),
    ("logsUrl", "logs_url"),
    ("orgName", "api_endpoint"),
    ("apiUser", "api_username"),
    ("apiPassword", "api_password"),
)

# (JSON key under service_config[i], ServiceTarget field, required)
SERVICE_FIELDS = (
    ("serviceName", "service_name", True),
    ("label", "label", True),
    ("ip", "ip", True),
    ("port", "port", True),
    ("path", "path", True),
    ("protocol", "protocol", True),
    ("network", "network", False),
)


class ConfigResolver:
    """Pure transformation from configuration JSON to DeploymentSpec."""

    def __init__(self):
        self.logger = logging.getLogger("nms.config")

    def resolve_file(self, config_path: Union[str, Path]) -> DeploymentSpec:
        """Read and resolve a configuration file.

        Raises:
            MalformedConfigError: If the file cannot be read or is not valid JSON
            MissingFieldError: If a required value is absent or empty
            InvalidFieldError: If a value has the wrong type or range
        """
        config_path = Path(config_path)
        try:
            raw = config_path.read_bytes()
        except OSError as e:
            raise MalformedConfigError(
                f"Provided file {config_path} doesn't exist or is not readable: {e}"
            )
        self.logger.debug(f"Loaded {len(raw)} bytes from {config_path}")
        return self.resolve(raw)

    def resolve(self, json_bytes: Union[bytes, str]) -> DeploymentSpec:
        """Resolve raw configuration JSON.

        Args:
            json_bytes: Configuration document

        Returns:
            Immutable DeploymentSpec

        Raises:
            MalformedConfigError: If the document is not a JSON object
            MissingFieldError: If a required value is absent or empty
            InvalidFieldError: If a value has the wrong type or range
        """
        try:
            document = json.loads(json_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedConfigError(f"Configuration is not valid JSON: {e}")

        if not isinstance(document, dict):
            raise MalformedConfigError("Configuration root must be a JSON object")

        host_label = self._required_scalar(document, "hostname")
        connection = ConnectionSpec(
            **{
                field: self._required_scalar(document, f"connection_config.{key}")
                for key, field in CONNECTION_FIELDS
            }
        )
        components = self._resolve_components(document)
        services = self._resolve_services(document)

        spec = DeploymentSpec(
            host_label=host_label,
            connection=connection,
            components=tuple(components),
            services=tuple(services),
        )
        self.logger.info(
            f"Resolved configuration: host={spec.host_label}, "
            f"components={[c.kind.value for c in spec.components]}, "
            f"services={len(spec.services)}"
        )
        return spec

    def _required_scalar(self, document: dict, path: str) -> str:
        """Fetch a dotted path; absent, null or empty values are missing."""
        value: Any = document
        for key in path.split("."):
            if not isinstance(value, dict) or key not in value:
                raise MissingFieldError(path)
            value = value[key]

        if value is None or value == "":
            raise MissingFieldError(path)
        if isinstance(value, (dict, list)):
            raise InvalidFieldError(path, "expected a scalar value")
        if isinstance(value, str):
            return value
        # numbers and booleans render as their JSON text
        return json.dumps(value)

    def _optional_scalar(self, entry: dict, key: str, path: str) -> Optional[str]:
        value = entry.get(key)
        if value is None or value == "":
            return None
        if isinstance(value, (dict, list)):
            raise InvalidFieldError(f"{path}.{key}", "expected a scalar value")
        if isinstance(value, str):
            return value
        return json.dumps(value)

    def _array(self, document: dict, key: str) -> list:
        value = document.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise InvalidFieldError(key, "expected an array")
        return value

    def _resolve_components(self, document: dict) -> list[ComponentSpec]:
        components: dict[ComponentKind, ComponentSpec] = {}

        for idx, entry in enumerate(self._array(document, "stack_config")):
            path = f"stack_config[{idx}]"
            if not isinstance(entry, dict):
                raise InvalidFieldError(path, "expected an object")

            info = component_by_display_name(entry.get("name", ""))
            if info is None:
                self.logger.debug(f"Ignoring unknown stack entry {path}: {entry.get('name')!r}")
                continue
            if info.kind in components:
                self.logger.warning(
                    f"Duplicate stack entry for {info.display_name} at {path}, "
                    f"keeping the first one"
                )
                continue

            port = entry.get("port")
            if port is None or port == "":
                raise MissingFieldError(f"{path}.port")

            retention_time = None
            if info.kind == ComponentKind.PROMETHEUS:
                retention_time = self._optional_scalar(entry, "logRetentionTime", path)

            try:
                components[info.kind] = ComponentSpec(
                    kind=info.kind, port=port, retention_time=retention_time
                )
            except ValidationError as e:
                raise InvalidFieldError(f"{path}.port", _first_error(e))

        return list(components.values())

    def _resolve_services(self, document: dict) -> list[ServiceTarget]:
        services = []

        for idx, entry in enumerate(self._array(document, "service_config")):
            path = f"service_config[{idx}]"
            if not isinstance(entry, dict):
                raise InvalidFieldError(path, "expected an object")

            values = {}
            for key, field, required in SERVICE_FIELDS:
                value = entry.get(key)
                if value is None or value == "":
                    if required:
                        raise MissingFieldError(f"{path}.{key}")
                    continue
                values[field] = value

            try:
                services.append(ServiceTarget(**values))
            except ValidationError as e:
                loc = e.errors()[0]["loc"]
                key = next((k for k, f, _ in SERVICE_FIELDS if (f,) == tuple(loc)), None)
                raise InvalidFieldError(f"{path}.{key}" if key else path, _first_error(e))

        return services


def _first_error(error: ValidationError) -> str:
    return error.errors()[0]["msg"]
