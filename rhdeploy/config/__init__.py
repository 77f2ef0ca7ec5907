"""Configuration helpers for rayhunter-deploy."""

from .model import DeviceConfig, ProvisionConfig
from .settings import load_provision_config

__all__ = ["DeviceConfig", "ProvisionConfig", "load_provision_config"]
