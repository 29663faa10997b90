"""
Protocol fee utilities.

Fee-bearing operations:
- transfer: private -> private transfers
- unshield: private -> public withdrawals
- swap: private AMM swaps
- remove_liquidity: LP token withdrawals

Free operations (add value to the pool):
- shield, add_liquidity, consolidate, vote
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from notecore.constants import (
    BPS_DIVISOR,
    DEFAULT_REMOVE_LIQUIDITY_FEE_BPS,
    DEFAULT_SWAP_FEE_BPS,
    DEFAULT_TRANSFER_FEE_BPS,
    DEFAULT_UNSHIELD_FEE_BPS,
    MAX_FEE_BPS,
)


class OperationKind(str, Enum):
    SHIELD = "shield"
    TRANSFER = "transfer"
    UNSHIELD = "unshield"
    SWAP = "swap"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    CONSOLIDATE = "consolidate"
    VOTE = "vote"

    @property
    def is_free(self) -> bool:
        return self in FREE_OPERATIONS


FREE_OPERATIONS = frozenset(
    {
        OperationKind.SHIELD,
        OperationKind.ADD_LIQUIDITY,
        OperationKind.CONSOLIDATE,
        OperationKind.VOTE,
    }
)


class ProtocolFeeConfig(BaseModel):
    """Protocol fee rates in basis points."""

    transfer_fee_bps: int = Field(default=DEFAULT_TRANSFER_FEE_BPS, ge=0, le=MAX_FEE_BPS)
    unshield_fee_bps: int = Field(default=DEFAULT_UNSHIELD_FEE_BPS, ge=0, le=MAX_FEE_BPS)
    swap_fee_bps: int = Field(default=DEFAULT_SWAP_FEE_BPS, ge=0, le=MAX_FEE_BPS)
    remove_liquidity_fee_bps: int = Field(
        default=DEFAULT_REMOVE_LIQUIDITY_FEE_BPS, ge=0, le=MAX_FEE_BPS
    )
    fees_enabled: bool = True

    def bps_for(self, operation: OperationKind) -> int:
        """Get the configured rate for an operation (0 for free operations)."""
        rates = {
            OperationKind.TRANSFER: self.transfer_fee_bps,
            OperationKind.UNSHIELD: self.unshield_fee_bps,
            OperationKind.SWAP: self.swap_fee_bps,
            OperationKind.REMOVE_LIQUIDITY: self.remove_liquidity_fee_bps,
        }
        return rates.get(operation, 0)


@dataclass
class FeeCalculation:
    """Result of a protocol fee calculation"""

    amount: int
    fee_amount: int
    amount_after_fee: int
    fee_bps: int
    is_free: bool


def calculate_protocol_fee(
    amount: int,
    operation: OperationKind,
    config: ProtocolFeeConfig | None = None,
) -> FeeCalculation:
    """
    Calculate the protocol fee for an operation.

    Args:
        amount: Operation amount in smallest units
        operation: Kind of operation
        config: Fee configuration (None means fees were not fetched: no fee)

    Returns:
        FeeCalculation with the fee rounded down to whole units
    """
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")

    if operation.is_free:
        return FeeCalculation(
            amount=amount, fee_amount=0, amount_after_fee=amount, fee_bps=0, is_free=True
        )

    if config is None or not config.fees_enabled:
        return FeeCalculation(
            amount=amount, fee_amount=0, amount_after_fee=amount, fee_bps=0, is_free=False
        )

    fee_bps = config.bps_for(operation)
    fee_amount = amount * fee_bps // BPS_DIVISOR
    return FeeCalculation(
        amount=amount,
        fee_amount=fee_amount,
        amount_after_fee=amount - fee_amount,
        fee_bps=fee_bps,
        is_free=False,
    )
