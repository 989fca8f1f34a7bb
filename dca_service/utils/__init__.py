"""Utility functions and helpers for the service."""

from dca_service.utils.identifiers import (
    extract_schedule_timestamp,
    generate_schedule_id,
    generate_tx_hash,
    validate_schedule_id,
    validate_tx_hash,
)

__all__ = [
    # Generation
    "generate_schedule_id",
    "generate_tx_hash",
    # Validation
    "validate_schedule_id",
    "validate_tx_hash",
    # Extraction
    "extract_schedule_timestamp",
]
