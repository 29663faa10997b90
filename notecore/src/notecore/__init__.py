"""
notecore - Core library for the shielded note wallet

Provides the note model, protocol fees and shared constants.
"""

__version__ = "0.3.0"

from notecore.constants import (
    COMMITMENT_SIZE,
    CONSOLIDATION_CIRCUIT_INPUTS,
    DEFAULT_DUST_THRESHOLD,
    MAX_TRANSFER_INPUTS,
    MIN_NOTES_PER_BATCH,
)
from notecore.fees import (
    FREE_OPERATIONS,
    FeeCalculation,
    OperationKind,
    ProtocolFeeConfig,
    calculate_protocol_fee,
)
from notecore.models import PLANNED_LEAF_INDEX, Note, total_amount, unspent_notes

__all__ = [
    "COMMITMENT_SIZE",
    "CONSOLIDATION_CIRCUIT_INPUTS",
    "DEFAULT_DUST_THRESHOLD",
    "FREE_OPERATIONS",
    "FeeCalculation",
    "MAX_TRANSFER_INPUTS",
    "MIN_NOTES_PER_BATCH",
    "Note",
    "OperationKind",
    "PLANNED_LEAF_INDEX",
    "ProtocolFeeConfig",
    "calculate_protocol_fee",
    "total_amount",
    "unspent_notes",
]
