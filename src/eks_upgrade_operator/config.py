"""Operator settings with YAML file and environment variable overrides."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CRD_GROUP = "kuo.io"
CRD_VERSION = "v1alpha1"
CRD_PLURAL = "eksupgrades"


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


@dataclass(frozen=True)
class OperatorSettings:
    """Polling cadence, timeouts, and integration endpoints for the operator."""

    control_plane_poll_seconds: int = field(default_factory=lambda: _env_int("KUO_CONTROL_PLANE_POLL_SECONDS", 30))
    addon_poll_seconds: int = field(default_factory=lambda: _env_int("KUO_ADDON_POLL_SECONDS", 15))
    nodegroup_poll_seconds: int = field(default_factory=lambda: _env_int("KUO_NODEGROUP_POLL_SECONDS", 30))
    addon_timeout_minutes: int = field(default_factory=lambda: _env_int("KUO_ADDON_TIMEOUT_MINUTES", 30))
    transient_retry_seconds: int = field(default_factory=lambda: _env_int("KUO_TRANSIENT_RETRY_SECONDS", 10))
    status_conflict_retry_seconds: int = field(
        default_factory=lambda: _env_int("KUO_STATUS_CONFLICT_RETRY_SECONDS", 5)
    )
    slack_webhook_url: str | None = field(default_factory=lambda: os.environ.get("SLACK_WEBHOOK_URL") or None)
    crd_group: str = CRD_GROUP
    crd_version: str = CRD_VERSION
    crd_plural: str = CRD_PLURAL


_INT_FIELDS = {
    "control_plane_poll_seconds",
    "addon_poll_seconds",
    "nodegroup_poll_seconds",
    "addon_timeout_minutes",
    "transient_retry_seconds",
    "status_conflict_retry_seconds",
}
_STR_FIELDS = {"slack_webhook_url", "crd_group", "crd_version", "crd_plural"}


def _load_settings_file(path: Path) -> dict[str, Any]:
    """Parse the operator YAML file into a dict of OperatorSettings overrides.

    Args:
        path: Path to the YAML settings file.

    Returns:
        A dict of validated overrides. Empty when the file does not exist.

    Raises:
        ValueError: If the file is not a mapping, names unknown keys, or has wrong value types.
    """
    if not path.exists():
        return {}

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = f"Operator settings file {path} must contain a mapping, got {type(raw).__name__}."
        raise ValueError(msg)

    unknown = sorted(set(raw) - _INT_FIELDS - _STR_FIELDS)
    if unknown:
        msg = f"Operator settings file {path} has unknown keys: {', '.join(unknown)}."
        raise ValueError(msg)

    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                msg = f"Operator setting '{key}' must be a non-negative integer, got {value!r}."
                raise ValueError(msg)
        elif value is not None and not isinstance(value, str):
            msg = f"Operator setting '{key}' must be a string, got {value!r}."
            raise ValueError(msg)
        overrides[key] = value
    return overrides


_SETTINGS: list[OperatorSettings] = []


def load_settings(path: Path | None = None) -> OperatorSettings:
    """Load settings from YAML, layered over environment defaults, and cache them.

    Reads the file path from ``EKS_UPGRADE_OPERATOR_CONFIG`` when no path is given,
    defaulting to ``operator.yaml`` in the current working directory.
    """
    if path is None:
        path = Path(os.environ.get("EKS_UPGRADE_OPERATOR_CONFIG", "operator.yaml"))
    settings = dataclasses.replace(OperatorSettings(), **_load_settings_file(path))
    _SETTINGS.clear()
    _SETTINGS.append(settings)
    return settings


def get_settings() -> OperatorSettings:
    """Return the loaded settings, falling back to environment defaults."""
    if not _SETTINGS:
        _SETTINGS.append(OperatorSettings())
    return _SETTINGS[0]
