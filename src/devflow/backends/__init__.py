"""Task backend detection and the external tracker client."""

from devflow.backends.beads_client import BeadsClient, BeadsTask
from devflow.backends.detector import TaskBackendAdapter, TaskBackendInfo, TaskBackendKind

__all__ = [
    "BeadsClient",
    "BeadsTask",
    "TaskBackendAdapter",
    "TaskBackendInfo",
    "TaskBackendKind",
]
