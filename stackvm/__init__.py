"""stackvm - Single-VM provisioning on AWS through CloudFormation."""

from .errors import (
    BestEffortFailure,
    ControlPlaneError,
    DeleteReport,
    OperationCancelled,
    ProvisioningError,
    StackVMError,
    ValidationError,
    WaitTimeoutError,
)
from .orchestrator import ProvisioningOrchestrator
from .providers import ProviderRegistry, build_registry
from .types import (
    DNSRecord,
    DNSRecordSet,
    DNSSettings,
    InstanceStatus,
    NetworkTopology,
    ProvisioningState,
    StackOutputs,
    StackState,
    VMSpecification,
)
from .utils import error, log, warn

__all__ = [
    "ProvisioningOrchestrator",
    "ProviderRegistry",
    "build_registry",
    "log",
    "warn",
    "error",
    "BestEffortFailure",
    "ControlPlaneError",
    "DeleteReport",
    "OperationCancelled",
    "ProvisioningError",
    "StackVMError",
    "ValidationError",
    "WaitTimeoutError",
    "DNSRecord",
    "DNSRecordSet",
    "DNSSettings",
    "InstanceStatus",
    "NetworkTopology",
    "ProvisioningState",
    "StackOutputs",
    "StackState",
    "VMSpecification",
]
