"""
Note protocol and consolidation policy constants.

Input arity is bounded by the proving circuits:
- transfers accept up to MAX_TRANSFER_INPUTS notes
- the consolidation circuit merges up to CONSOLIDATION_CIRCUIT_INPUTS notes into one
"""

from __future__ import annotations

# Size of a note commitment in bytes
COMMITMENT_SIZE = 32

# Circuit arity limits
MAX_TRANSFER_INPUTS = 2
CONSOLIDATION_CIRCUIT_INPUTS = 3  # consolidate_3x1
MIN_NOTES_PER_BATCH = 2

# Notes below this amount (smallest units) are dust
# 1000 = 0.001 tokens at 6 decimals
DEFAULT_DUST_THRESHOLD = 1000

# Fragmentation scoring
# Each note count owns one band of SCORE_BAND_WIDTH points
SCORE_BAND_WIDTH = 10
SCORE_NOTE_COUNT_SATURATION = 11  # notes at which the score is pinned to 100

# Analyzer recommendation cutoffs
# Above 44 a five-note snapshot sits in the upper half of its band
CONSOLIDATE_SCORE_CUTOFF = 44
CONSOLIDATE_NOTE_CEILING = 5
CONSOLIDATE_DUST_CEILING = 2

# Orchestrator bounds
MAX_CONSOLIDATION_ITERATIONS = 10
DEFAULT_CONFIRMATION_TIMEOUT_SEC = 120.0
# Upper bound on waiting for the note provider to reflect a confirmed batch
DEFAULT_SETTLE_TIMEOUT_SEC = 2.0
DEFAULT_SETTLE_POLL_INTERVAL_SEC = 0.25

# Auto-consolidation monitor defaults
DEFAULT_FRAGMENTATION_THRESHOLD = 60
DEFAULT_MAX_NOTE_COUNT = 8
DEFAULT_MAX_DUST_NOTES = 3
DEFAULT_CHECK_INTERVAL_MS = 60_000

# Advisory consolidation cost (lamports)
# Covers proof verification, per-input nullifier/commitment checks and priority fees
CONSOLIDATION_BASE_COST = 100_000
CONSOLIDATION_PER_INPUT_COST = 50_000

# Protocol fees in basis points
BPS_DIVISOR = 10_000
MAX_FEE_BPS = 1_000  # 10%
DEFAULT_TRANSFER_FEE_BPS = 10  # 0.1%
DEFAULT_UNSHIELD_FEE_BPS = 25  # 0.25%
DEFAULT_SWAP_FEE_BPS = 30  # 0.3%
DEFAULT_REMOVE_LIQUIDITY_FEE_BPS = 25  # 0.25%
