"""Deployment lifecycle states."""

from enum import Enum


class DeploymentState(str, Enum):
    """Lifecycle states of a managed deployment tree.

    State transitions:
    absent → installed → reconfiguring → installed
                 ↓
            uninstalled (terminal)
    """

    ABSENT = "absent"
    INSTALLED = "installed"
    RECONFIGURING = "reconfiguring"
    UNINSTALLED = "uninstalled"
