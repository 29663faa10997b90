"""
Core note models using Pydantic for validation.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field, field_validator

from notecore.constants import COMMITMENT_SIZE

# leaf_index of a planned merge output that has not been created yet
PLANNED_LEAF_INDEX = -1


class Note(BaseModel):
    """
    An unspent value record, analogous to a UTXO.

    Notes are snapshots handed out by a note provider; they are never mutated.
    """

    commitment: bytes = Field(..., min_length=COMMITMENT_SIZE, max_length=COMMITMENT_SIZE)
    token_id: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    leaf_index: int = Field(..., ge=PLANNED_LEAF_INDEX)
    spent: bool = False

    model_config = {"frozen": True}

    @field_validator("commitment", mode="before")
    @classmethod
    def parse_commitment(cls, v: Any) -> Any:
        # Accept hex strings as well as raw bytes
        if isinstance(v, str):
            try:
                return bytes.fromhex(v)
            except ValueError as e:
                raise ValueError(f"Invalid commitment hex: {v}") from e
        return v

    @classmethod
    def planned(cls, token_id: str, amount: int, batch_number: int) -> Note:
        """Placeholder for the merge output of a batch that has not been executed."""
        commitment = hashlib.sha256(f"planned-merge:{token_id}:{batch_number}".encode()).digest()
        return cls(
            commitment=commitment,
            token_id=token_id,
            amount=amount,
            leaf_index=PLANNED_LEAF_INDEX,
        )

    @property
    def is_planned(self) -> bool:
        return self.leaf_index == PLANNED_LEAF_INDEX

    @property
    def commitment_hex(self) -> str:
        return self.commitment.hex()

    def short_id(self) -> str:
        return f"{self.commitment.hex()[:16]}..."


def unspent_notes(notes: Iterable[Note], token_id: str | None = None) -> list[Note]:
    """Filter a snapshot to unspent notes, optionally of a single token."""
    return [n for n in notes if not n.spent and (token_id is None or n.token_id == token_id)]


def total_amount(notes: Iterable[Note]) -> int:
    return sum(n.amount for n in notes)
