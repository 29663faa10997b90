"""
Note selection under the circuit input limit.

Selection must tell "not enough money" apart from "enough money, but spread
over more notes than one operation can take": the first needs a top-up, the
second needs consolidation before retrying.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger
from notecore.constants import CONSOLIDATION_CIRCUIT_INPUTS
from notecore.models import Note, unspent_notes

from notewallet.config import SelectionOptions
from notewallet.wallet.models import SelectionError, SelectionResult, SelectionStrategy


def eligible_notes(notes: Iterable[Note], token_id: str | None = None) -> list[Note]:
    """Unspent, non-zero notes of the requested token."""
    return [n for n in unspent_notes(notes, token_id) if n.amount > 0]


def sort_notes(notes: Iterable[Note], strategy: SelectionStrategy) -> list[Note]:
    """Order notes for a strategy; ties are broken by leaf index."""
    if strategy == SelectionStrategy.GREEDY:
        return sorted(notes, key=lambda n: (-n.amount, n.leaf_index))
    return sorted(notes, key=lambda n: (n.amount, n.leaf_index))


def select_notes(
    notes: Iterable[Note],
    target_amount: int,
    options: SelectionOptions | None = None,
    token_id: str | None = None,
) -> SelectionResult:
    """
    Select notes covering target_amount + fee_amount within max_inputs.

    Args:
        notes: Note snapshot
        target_amount: Amount to spend (must be > 0)
        options: Strategy, input limit and fee
        token_id: Restrict to one token (None = all notes in the snapshot)

    Returns:
        SelectionResult with the consumed prefix, or an error
    """
    if target_amount <= 0:
        raise ValueError(f"Target amount must be positive, got {target_amount}")

    opts = options or SelectionOptions()
    effective_target = target_amount + opts.fee_amount

    candidates = eligible_notes(notes, token_id)
    if not candidates:
        return SelectionResult(
            error=SelectionError.NO_ELIGIBLE_NOTES,
            target_amount=effective_target,
            message="No eligible notes available",
        )

    balance = sum(n.amount for n in candidates)
    if balance < effective_target:
        return SelectionResult(
            error=SelectionError.INSUFFICIENT_BALANCE,
            target_amount=effective_target,
            message=f"Insufficient balance: have {balance}, need {effective_target}",
        )

    selected: list[Note] = []
    total = 0
    for note in sort_notes(candidates, opts.strategy):
        if total >= effective_target or len(selected) >= opts.max_inputs:
            break
        selected.append(note)
        total += note.amount

    if total < effective_target:
        # Balance suffices, so more inputs would have succeeded
        logger.debug(
            f"Selection needs more than {opts.max_inputs} inputs for {effective_target} "
            f"({len(candidates)} notes, strategy={opts.strategy.value})"
        )
        return SelectionResult(
            error=SelectionError.EXCEEDS_MAX_INPUTS,
            target_amount=effective_target,
            message=(
                f"Need more than {opts.max_inputs} inputs to cover {effective_target}. "
                "Consolidate notes first."
            ),
        )

    return SelectionResult(notes=selected, target_amount=effective_target)


def count_notes_to_cover(
    notes: Iterable[Note], amount: int, token_id: str | None = None
) -> int | None:
    """
    Number of smallest-first notes needed to reach amount.

    Returns None if the whole balance is short of amount.
    """
    total = 0
    for count, note in enumerate(
        sort_notes(eligible_notes(notes, token_id), SelectionStrategy.SMALLEST_FIRST), start=1
    ):
        total += note.amount
        if total >= amount:
            return count
    return None


def select_for_consolidation(
    notes: Iterable[Note],
    max_inputs: int = CONSOLIDATION_CIRCUIT_INPUTS,
    token_id: str | None = None,
) -> list[Note]:
    """
    Pick the next merge batch: the smallest min(max_inputs, n) notes.

    Returns an empty list when there is nothing to merge.
    """
    candidates = eligible_notes(notes, token_id)
    if len(candidates) <= 1:
        return []
    ordered = sort_notes(candidates, SelectionStrategy.SMALLEST_FIRST)
    return ordered[: min(max_inputs, len(ordered))]
