"""Core module - shared plumbing for the approval backend.

This module contains configuration, error types, observability and
credential encryption. It is intentionally DIA-agnostic.

DIA-specific logic (session handling, request shaping, field mappings)
belongs in /connectors/dia/.
"""

__version__ = "1.0.0"
