"""
Fragmentation analysis of note snapshots.

The score is banded by note count. A snapshot of n notes scores within
[10(n-1), 10(n-1) + 9], and 11 or more notes score 100. Inside a band, the
share of dust notes and the share of the balance outside the largest note
order snapshots of the same size. Any snapshot with more notes therefore
scores at least as high as any snapshot with fewer, whatever the amounts.
"""

from __future__ import annotations

from collections.abc import Iterable

from notecore.constants import (
    CONSOLIDATE_DUST_CEILING,
    CONSOLIDATE_NOTE_CEILING,
    CONSOLIDATE_SCORE_CUTOFF,
    DEFAULT_DUST_THRESHOLD,
    SCORE_BAND_WIDTH,
    SCORE_NOTE_COUNT_SATURATION,
)
from notecore.models import Note, unspent_notes

from notewallet.wallet.models import FragmentationReport


def fragmentation_score(note_count: int, dust_notes: int, largest: int, total: int) -> int:
    """
    Compute the 0-100 fragmentation score.

    Args:
        note_count: Number of unspent notes
        dust_notes: Number of those notes below the dust threshold
        largest: Amount of the largest note
        total: Total balance across the notes

    Returns:
        Integer score, higher = more fragmented
    """
    if note_count <= 0:
        return 0
    if note_count >= SCORE_NOTE_COUNT_SATURATION:
        return 100

    dust_share = min(dust_notes / note_count, 1.0)
    spread = 1 - largest / total if total > 0 else 0.0
    # Never reaches the next band
    within = min(int((SCORE_BAND_WIDTH - 1) * (dust_share + spread) / 2), SCORE_BAND_WIDTH - 1)

    return SCORE_BAND_WIDTH * (note_count - 1) + within


def analyze_notes(
    notes: Iterable[Note],
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    token_id: str | None = None,
) -> FragmentationReport:
    """
    Analyze how fragmented a balance is.

    Spent notes are ignored. Pure and idempotent.
    """
    live = unspent_notes(notes, token_id)

    if not live:
        return FragmentationReport(
            total_notes=0,
            dust_notes=0,
            largest_note=0,
            smallest_note=0,
            total_balance=0,
            fragmentation_score=0,
            should_consolidate=False,
        )

    amounts = [n.amount for n in live]
    dust_notes = sum(1 for a in amounts if a < dust_threshold)
    largest = max(amounts)
    total = sum(amounts)
    score = fragmentation_score(len(live), dust_notes, largest, total)

    return FragmentationReport(
        total_notes=len(live),
        dust_notes=dust_notes,
        largest_note=largest,
        smallest_note=min(amounts),
        total_balance=total,
        fragmentation_score=score,
        should_consolidate=(
            len(live) > CONSOLIDATE_NOTE_CEILING
            or dust_notes > CONSOLIDATE_DUST_CEILING
            or score > CONSOLIDATE_SCORE_CUTOFF
        ),
    )
