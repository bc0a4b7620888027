"""
Observability Module

Provides structured logging with correlation IDs for sync passes and
approval batches, plus redaction of DIA payloads before they are logged.
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    redact_payload,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "redact_payload",
]
