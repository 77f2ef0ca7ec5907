"""Host-side transports to the device."""

from .bridge import BridgeShell
from .process import CommandResult, CommandRunner, run_command
from .serial import SerialChannel

__all__ = [
    "BridgeShell",
    "CommandResult",
    "CommandRunner",
    "SerialChannel",
    "run_command",
]
