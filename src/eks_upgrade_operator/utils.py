"""Shared helpers: time arithmetic for the phase drivers and scrubbing of error text."""

from __future__ import annotations

import re
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Timezone-aware current time. Patched in tests that need a fixed clock."""
    return datetime.now(tz=UTC)


def elapsed_minutes(started_at: datetime | None, now: datetime) -> float | None:
    """Minutes between ``started_at`` and ``now``, or None when nothing was started.

    Naive timestamps are treated as UTC so values read back from older status
    documents still compare cleanly.
    """
    if started_at is None:
        return None
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=UTC)
    return (now - started_at).total_seconds() / 60


_IP_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
_ARN_ACCOUNT_PATTERN = re.compile(r"(arn:aws[a-z\-]*:[a-z0-9\-]+:[a-z0-9\-]*:)\d{12}(?=:)")
_EKS_ENDPOINT_PATTERN = re.compile(r"\b[\w.-]+\.eks\.amazonaws\.com(?:\.cn)?\b", re.IGNORECASE)
_EKS_TOKEN_PATTERN = re.compile(r"k8s-aws-v1\.[A-Za-z0-9_\-]+")


def scrub_sensitive_values(text: str) -> str:
    """Remove IPs, AWS account IDs in ARNs, EKS API hostnames, and bearer tokens from text.

    Applied to error text before it lands in the status document or a chat message.
    """
    if not text:
        return text
    result = _EKS_TOKEN_PATTERN.sub("[REDACTED_TOKEN]", text)
    result = _IP_PATTERN.sub("[REDACTED_IP]", result)
    result = _ARN_ACCOUNT_PATTERN.sub(r"\1[REDACTED]", result)
    result = _EKS_ENDPOINT_PATTERN.sub("[REDACTED_ENDPOINT]", result)
    return result
