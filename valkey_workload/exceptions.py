"""
Workload Exceptions
===================

Error taxonomy shared by the data store, the runners and the CLI.
"""


class WorkloadError(Exception):
    """Base class for all errors raised by valkey_workload."""


class ConfigurationError(WorkloadError):
    """
    Raised for a bad or missing connection parameter.

    Attributes:
        field (str): Name of the offending configuration field
    """

    def __init__(self, field: str, message: str = None):
        self.field = field
        super().__init__(f"config error: {field}" + (f" {message}" if message else ""))


class InvalidArgument(WorkloadError, ValueError):
    """Raised when a caller passes an argument outside the accepted domain."""


class TransientClusterError(WorkloadError):
    """Raised when a cluster call fails with a timeout or connection error."""


class DataStoreNotReady(WorkloadError):
    """Raised when the cluster never answered the startup probe."""
