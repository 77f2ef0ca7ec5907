"""Settings loader for rayhunter-deploy.

Settings are layered: built-in defaults, then ``RHDEPLOY_*`` environment
variables, then explicit overrides (the command line). The merged mapping
is validated by :class:`~rhdeploy.config.schema.ProvisionConfigSchema`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from marshmallow import ValidationError

from .common import get_default_config, get_env_config
from .model import ProvisionConfig
from .schema import ProvisionConfigSchema

logger = logging.getLogger(__name__)


def _load_raw_config(
    overrides: Mapping[str, Any] | None,
    environ: Mapping[str, str] | None,
) -> dict[str, Any]:
    raw = get_default_config()
    raw.update(get_env_config(environ))
    if overrides:
        raw.update({key: value for key, value in overrides.items() if value is not None})
    return raw


def load_provision_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ProvisionConfig:
    """Load and validate provisioning settings.

    Raises:
        ValueError: if any setting fails validation.
    """
    raw = _load_raw_config(overrides, environ)
    try:
        config = ProvisionConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid provisioning settings: {exc.messages}") from exc
    if config.boot_deadline is None:
        logger.warning("Device boot waits are unbounded (boot_timeout=0).")
    return config


__all__ = ["ProvisionConfig", "load_provision_config"]
