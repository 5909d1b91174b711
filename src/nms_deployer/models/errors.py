"""Error taxonomy for deployment operations.

Every error carries a short machine-readable `code` which is also used as
the message prefix, e.g. ``MISSING_FIELD: connection_config.apiPassword``.
"""

from pathlib import Path
from typing import Optional, Union


class DeploymentError(Exception):
    """Base class for all fatal deployment errors."""

    code = "DEPLOYMENT_FAILED"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.detail = message
        super().__init__(f"{self.code}: {message}")


class ConfigError(DeploymentError):
    """JSON configuration could not be turned into a DeploymentSpec."""

    code = "CONFIG_ERROR"


class MalformedConfigError(ConfigError):
    code = "MALFORMED_CONFIG"


class MissingFieldError(ConfigError):
    """A required field is absent, null or empty."""

    code = "MISSING_FIELD"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Missing value for {path} in config JSON")


class InvalidFieldError(ConfigError):
    """A field is present but has the wrong type or range."""

    code = "INVALID_FIELD"

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Invalid value for {path} in config JSON: {reason}")


class RenderError(DeploymentError):
    code = "RENDER_ERROR"


class MissingPlaceholderError(RenderError):
    """A structural placeholder is absent from a compose template."""

    code = "MISSING_PLACEHOLDER"

    def __init__(self, placeholder: str, template_name: str):
        self.placeholder = placeholder
        self.template_name = template_name
        super().__init__(f"Placeholder {placeholder} not found in {template_name}")


class WriteFailureError(RenderError):
    code = "WRITE_FAILED"

    def __init__(self, destination: Union[str, Path], reason: str):
        self.destination = Path(destination)
        super().__init__(f"Could not write {destination}: {reason}")


class TreeIOError(DeploymentError):
    """Create/delete/copy/move failure on the deployment tree."""

    code = "IO_FAILED"


class PreconditionError(DeploymentError):
    """Runtime or on-disk state does not allow the requested operation."""

    code = "PRECONDITION_FAILED"


class ExternalToolError(DeploymentError):
    """Container runtime or lifecycle script failed."""

    code = "EXTERNAL_TOOL_FAILED"

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        code: Optional[str] = None,
    ):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, code=code)


class BundleError(DeploymentError):
    """Template bundle could not be fetched or is incomplete."""

    code = "BUNDLE_INVALID"


class OperationCancelled(DeploymentError):
    """Operator declined a confirmation prompt."""

    code = "CANCELLED"
