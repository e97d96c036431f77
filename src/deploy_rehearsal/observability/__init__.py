"""Observability public API."""

from deploy_rehearsal.observability.logging import (
    REDACTED_VALUE,
    configure_logging,
    redact_event,
    redact_text,
)

__all__ = ["REDACTED_VALUE", "configure_logging", "redact_event", "redact_text"]
