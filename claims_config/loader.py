"""
Configuration Loader (``claims_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``claims_config.schema``, plus staff seed files into ``StaffRecord``
values.  Runtime callers go through ``claims_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Numeric limits must be positive integers.
* ``compute_checksum`` is deterministic for the same merged settings.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad key or value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import yaml

from claims_config.schema import (
    ClaimsConfig,
    DashboardConfig,
    DatabaseConfig,
    DocumentsConfig,
    LoggingSettings,
)
from claims_kernel.domain.identity import Role, StaffRecord

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "documents": DocumentsConfig,
    "dashboard": DashboardConfig,
    "logging": LoggingSettings,
}

_POSITIVE_INTS = {
    ("database", "pool_size"),
    ("database", "max_overflow"),
    ("database", "pool_timeout"),
    ("documents", "max_bytes"),
    ("dashboard", "recent_claims_limit"),
}

_STAFF_SECTIONS: dict[str, Role] = {
    "lecturers": Role.LECTURER,
    "coordinators": Role.PROGRAMME_COORDINATOR,
    "managers": Role.ACADEMIC_MANAGER,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {name: dict(section or {}) for name, section in base.items()}
    for name, section in override.items():
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ValueError(f"Config section {name!r} must be a mapping")
        merged.setdefault(name, {}).update(section)
    return merged


def _parse_section(name: str, data: dict[str, Any]) -> Any:
    cls = _SECTIONS[name]
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(
            f"Unknown key(s) in config section {name!r}: {', '.join(sorted(unknown))}"
        )
    for key, value in data.items():
        if (name, key) in _POSITIVE_INTS:
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name}.{key} must be a positive integer, got {value!r}")
    return cls(**data)


def parse_config(
    data: dict[str, Any],
    base_dir: Path | None = None,
    source: str | None = None,
) -> ClaimsConfig:
    """
    Parse merged settings into a ``ClaimsConfig``.

    A relative ``documents.root`` is resolved against ``base_dir``.

    Raises:
        ValueError: on unknown sections or keys, or invalid values.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    sections = {name: _parse_section(name, data.get(name) or {}) for name in _SECTIONS}

    documents: DocumentsConfig = sections["documents"]
    root = Path(documents.root)
    if not root.is_absolute() and base_dir is not None:
        sections["documents"] = DocumentsConfig(
            root=str(base_dir / root),
            max_bytes=documents.max_bytes,
        )

    level = str(sections["logging"].level).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level is not a known level: {level!r}")
    sections["logging"] = LoggingSettings(level=level)

    return ClaimsConfig(
        **sections,
        source=source,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the merged settings."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_staff_entry(role: Role, data: dict[str, Any]) -> StaffRecord:
    """
    Parse one staff seed entry.

    ``user_id`` is required; ``staff_id`` is generated when absent.
    """
    if "user_id" not in data:
        raise ValueError(f"{role.value} seed entry is missing user_id: {data!r}")
    staff_id = data.get("staff_id")
    return StaffRecord(
        staff_id=UUID(str(staff_id)) if staff_id else uuid4(),
        user_id=UUID(str(data["user_id"])),
        role=role,
        first_name=str(data.get("first_name", "")),
        last_name=str(data.get("last_name", "")),
        email=str(data.get("email", "")),
    )


def load_staff_seed(path: Path) -> tuple[StaffRecord, ...]:
    """
    Load a staff seed file with ``lecturers``, ``coordinators`` and
    ``managers`` lists.

    Raises:
        ValueError: on unknown sections or malformed entries.
    """
    data = load_yaml_file(Path(path))
    unknown = set(data) - set(_STAFF_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown staff seed section(s): {', '.join(sorted(unknown))}")

    records: list[StaffRecord] = []
    for section, role in _STAFF_SECTIONS.items():
        for entry in data.get(section) or ():
            if not isinstance(entry, dict):
                raise ValueError(f"{section} entries must be mappings, got {entry!r}")
            records.append(parse_staff_entry(role, entry))
    return tuple(records)
