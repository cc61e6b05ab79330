"""
erp_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` returns the packaged ``defaults.yaml`` merged
    with an optional override file, as a frozen ``EngineConfig``.

Architecture position:
    Configuration.  Sits above ``erp_kernel`` and below ``erp_services``.
    The kernel MUST NEVER import from ``erp_config``; services pass the
    values it needs (prefixes, width, policy) into kernel services.

Audit relevance:
    Every call emits an ``ERP_CONFIG_TRACE`` log entry carrying the
    config checksum.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from erp_config.loader import compute_checksum, load_config_file, load_yaml_file
from erp_config.schema import EngineConfig

_logger = logging.getLogger("erp_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

__all__ = ["EngineConfig", "get_active_config", "load_config_file"]


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """
    The packaged defaults, overridden by ``path`` when given.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: Either file holds an invalid configuration.
    """
    config = EngineConfig.from_dict(load_yaml_file(DEFAULTS_FILE))
    source = str(DEFAULTS_FILE)
    if path is not None:
        config = config.merged(load_yaml_file(Path(path)))
        source = str(path)

    checksum = compute_checksum(config.as_dict())
    _logger.info(
        "ERP_CONFIG_TRACE",
        extra={
            "trace_type": "ERP_CONFIG_TRACE",
            "config_source": source,
            "checksum": checksum,
            "overpayment_policy": config.overpayment_policy.value,
            "number_width": config.number_width,
        },
    )
    return replace(config, checksum=checksum)
