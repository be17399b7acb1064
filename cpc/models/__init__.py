"""
CPC Domain Models

Clean dataclass-based models for type-safe data handling.
"""

from .errors import ErrorAction, ErrorKind, ErrorRecord, Severity
from .results import ExecutionResult, ValidationResult
from .command import Command
from .workspace import WorkspaceContext, SecretsBundle
from .cluster import ClusterNode, ClusterSummary
from .options import (
    NodeOptions,
    KubeconfigOptions,
    BootstrapOptions,
    AddonOptions,
    CorednsOptions,
    DeployOptions,
    StatusOptions,
)

__all__ = [
    # Errors
    "ErrorAction",
    "ErrorKind",
    "ErrorRecord",
    "Severity",
    # Results
    "ExecutionResult",
    "ValidationResult",
    # Execution
    "Command",
    # Workspace
    "WorkspaceContext",
    "SecretsBundle",
    # Cluster
    "ClusterNode",
    "ClusterSummary",
    # Options
    "NodeOptions",
    "KubeconfigOptions",
    "BootstrapOptions",
    "AddonOptions",
    "CorednsOptions",
    "DeployOptions",
    "StatusOptions",
]
