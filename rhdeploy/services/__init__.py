"""Pipeline stages for rayhunter-deploy."""

from .boot import BootWaiter, DebugModeSwitch
from .build import BuildArtifact, BuildOrchestrator, RebuildPolicy
from .deploy import DeployOrchestrator, ServiceUnit
from .dispatcher import CommandDispatcher
from .privilege import PrivilegeEscalator
from .reboot import RebootCoordinator
from .verify import ConnectivityVerifier, PortForwardBinding

__all__ = [
    "BootWaiter",
    "BuildArtifact",
    "BuildOrchestrator",
    "CommandDispatcher",
    "ConnectivityVerifier",
    "DebugModeSwitch",
    "DeployOrchestrator",
    "PortForwardBinding",
    "PrivilegeEscalator",
    "RebootCoordinator",
    "RebuildPolicy",
    "ServiceUnit",
]
