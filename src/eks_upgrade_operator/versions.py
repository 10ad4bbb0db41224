"""Kubernetes and EKS add-on version parsing, and control plane upgrade path calculation."""

from __future__ import annotations

import re

from eks_upgrade_operator.errors import InvalidVersionError, UpgradeNotPossibleError

_ADDON_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-eksbuild\.(\d+))?$")


def parse_k8s_version(version: str) -> tuple[int, int]:
    """Parse ``MAJOR.MINOR`` (extra components are ignored) into integers.

    Raises:
        InvalidVersionError: If a component is missing or non-numeric.
    """
    parts = version.split(".")
    if len(parts) < 2:
        raise InvalidVersionError(version)
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise InvalidVersionError(version) from None


def calculate_upgrade_path(current: str, target: str) -> list[str]:
    """Return every minor version from ``current + 1`` through ``target``, inclusive.

    An empty list means the control plane is already at the target minor (sync mode);
    add-ons and node groups may still need upgrading.

    Raises:
        InvalidVersionError: If either version cannot be parsed.
        UpgradeNotPossibleError: For cross-major upgrades and downgrades.
    """
    current_major, current_minor = parse_k8s_version(current)
    target_major, target_minor = parse_k8s_version(target)

    if current_major != target_major:
        raise UpgradeNotPossibleError("Cross-major version upgrades are not supported")

    if target_minor == current_minor:
        return []

    if target_minor < current_minor:
        raise UpgradeNotPossibleError(
            f"Target version {target} is lower than current version {current} (downgrade not supported)"
        )

    return [f"{current_major}.{minor}" for minor in range(current_minor + 1, target_minor + 1)]


def parse_addon_version(version: str) -> tuple[int, int, int, int] | None:
    """Parse ``v<major>.<minor>.<patch>-eksbuild.<build>`` into a comparable tuple."""
    match = _ADDON_VERSION_RE.match(version)
    if match is None:
        return None
    major, minor, patch, build = match.groups()
    return int(major), int(minor), int(patch), int(build or 0)


def addon_version_sort_key(version: str) -> tuple[int, tuple[int, int, int, int], str]:
    """Sort key that orders parseable versions numerically ahead of unparseable ones."""
    parsed = parse_addon_version(version)
    if parsed is None:
        return (0, (0, 0, 0, 0), version)
    return (1, parsed, version)
