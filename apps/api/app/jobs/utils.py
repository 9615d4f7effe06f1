"""Shared helpers for worker job handlers."""

from __future__ import annotations


def mask_email(email: str | None) -> str:
    """Shorten an address for logs: first three characters of the local part plus domain."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."


def error_summary(exc: BaseException, limit: int = 500) -> str:
    """Error text suitable for a recipient or job row."""
    message = str(exc) or exc.__class__.__name__
    return message[:limit]
