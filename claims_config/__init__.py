"""
claims_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``ClaimsConfig`` built from
    the packaged defaults, optionally overridden by a YAML file.

Architecture position:
    Configuration.  Sits above ``claims_kernel``; the kernel MUST NEVER
    import from ``claims_config``.  Callers pass the values they need
    (database URL, storage root, dashboard limit) into kernel constructors.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``claims_config_loaded`` log entry with the source file and checksum.
"""

from __future__ import annotations

from pathlib import Path

from claims_config.loader import (
    load_staff_seed,
    load_yaml_file,
    merge_settings,
    parse_config,
)
from claims_config.schema import ClaimsConfig
from claims_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULTS_FILE = Path(__file__).parent / "defaults" / "claims.yaml"


def get_active_config(config_path: str | Path | None = None) -> ClaimsConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file overriding any subset of the
            packaged defaults.  Relative ``documents.root`` values resolve
            against this file's directory (or the current directory when
            no file is given).

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If the merged settings are invalid.
    """
    data = load_yaml_file(DEFAULTS_FILE)
    base_dir = Path.cwd()
    source = str(DEFAULTS_FILE)

    if config_path is not None:
        path = Path(config_path)
        data = merge_settings(data, load_yaml_file(path))
        base_dir = path.resolve().parent
        source = str(path)

    config = parse_config(data, base_dir=base_dir, source=source)

    _logger.info(
        "claims_config_loaded",
        extra={"source": config.source, "checksum": config.checksum},
    )
    return config


__all__ = [
    "ClaimsConfig",
    "get_active_config",
    "load_staff_seed",
]
