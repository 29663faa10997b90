"""
Consolidation planning.

A plan repeatedly merges the smallest notes of the set, re-inserting the merged
output (as a planned placeholder note) until the target note count remains.
"""

from __future__ import annotations

from collections.abc import Iterable

from notecore.constants import (
    CONSOLIDATION_BASE_COST,
    CONSOLIDATION_CIRCUIT_INPUTS,
    CONSOLIDATION_PER_INPUT_COST,
    DEFAULT_DUST_THRESHOLD,
    MIN_NOTES_PER_BATCH,
)
from notecore.models import Note

from notewallet.wallet.fragmentation import analyze_notes
from notewallet.wallet.models import (
    ConsolidationBatch,
    ConsolidationPlan,
    ConsolidationSuggestion,
    ConsolidationSummary,
    SelectionStrategy,
    SuggestionPriority,
)
from notewallet.wallet.selector import eligible_notes, sort_notes

# Suggestion heuristics
HIGH_PRIORITY_DUST_NOTES = 3
MEDIUM_PRIORITY_REGULAR_NOTES = 5
LOW_PRIORITY_MIN_NOTES = 2


def _validate_batch_size(max_notes_per_batch: int) -> None:
    if max_notes_per_batch < MIN_NOTES_PER_BATCH:
        raise ValueError(
            f"max_notes_per_batch must be at least {MIN_NOTES_PER_BATCH}, "
            f"got {max_notes_per_batch}"
        )


def estimate_batch_count(note_count: int, max_notes_per_batch: int) -> int:
    """
    Advisory batch estimate: ceil(log(n) / log(k)).

    Computed as the smallest b with k**b >= n to avoid float rounding.
    Used for progress reporting only.
    """
    _validate_batch_size(max_notes_per_batch)
    if note_count <= 1:
        return 0
    batches = 0
    reach = 1
    while reach < note_count:
        reach *= max_notes_per_batch
        batches += 1
    return batches


def plan_consolidation(
    notes: Iterable[Note],
    max_notes_per_batch: int = CONSOLIDATION_CIRCUIT_INPUTS,
    target_note_count: int = 1,
    token_id: str | None = None,
) -> ConsolidationPlan:
    """
    Plan merge batches, smallest notes first.

    Args:
        notes: Note snapshot
        max_notes_per_batch: Batch size limit (>= 2)
        target_note_count: Stop when this many notes remain
        token_id: Restrict to one token

    Returns:
        ConsolidationPlan; later batches may contain planned placeholders
        for the outputs of earlier batches
    """
    _validate_batch_size(max_notes_per_batch)
    if target_note_count < 1:
        raise ValueError(f"target_note_count must be at least 1, got {target_note_count}")

    remaining = sort_notes(eligible_notes(notes, token_id), SelectionStrategy.SMALLEST_FIRST)
    plan = ConsolidationPlan(
        estimated_batches=estimate_batch_count(len(remaining), max_notes_per_batch)
    )
    # planned commitment -> producing batch number
    producers: dict[bytes, int] = {}
    batch_number = 1

    while len(remaining) > target_note_count:
        # Never merge below the target count
        size = min(max_notes_per_batch, len(remaining) - target_note_count + 1)
        batch_notes = remaining[:size]
        remaining = remaining[size:]

        batch = ConsolidationBatch(
            notes=batch_notes,
            batch_number=batch_number,
            sources={n.commitment: producers[n.commitment] for n in batch_notes if n.is_planned},
        )
        plan.batches.append(batch)

        if remaining:
            merged = Note.planned(batch_notes[0].token_id, batch.total_amount, batch_number)
            producers[merged.commitment] = batch_number
            remaining = sort_notes(remaining + [merged], SelectionStrategy.SMALLEST_FIRST)

        batch_number += 1

    return plan


def suggest_consolidation(
    notes: Iterable[Note],
    max_notes_per_batch: int = CONSOLIDATION_CIRCUIT_INPUTS,
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    token_id: str | None = None,
) -> list[ConsolidationSuggestion]:
    """Consolidation opportunities for display, most urgent first."""
    _validate_batch_size(max_notes_per_batch)
    live = sort_notes(eligible_notes(notes, token_id), SelectionStrategy.SMALLEST_FIRST)
    if len(live) <= 1:
        return []

    dust = [n for n in live if n.amount < dust_threshold]
    regular = [n for n in live if n.amount >= dust_threshold]
    suggestions: list[ConsolidationSuggestion] = []

    def suggestion(
        candidates: list[Note], priority: SuggestionPriority, reason: str
    ) -> ConsolidationSuggestion:
        chosen = candidates[:max_notes_per_batch]
        return ConsolidationSuggestion(
            notes=chosen,
            resulting_amount=sum(n.amount for n in chosen),
            notes_reduced=len(chosen) - 1,
            priority=priority,
            reason=reason,
        )

    if len(dust) >= HIGH_PRIORITY_DUST_NOTES:
        suggestions.append(
            suggestion(
                dust,
                SuggestionPriority.HIGH,
                f"{len(dust)} dust notes detected. Consolidating will improve wallet performance.",
            )
        )

    if len(regular) > MEDIUM_PRIORITY_REGULAR_NOTES:
        suggestions.append(
            suggestion(
                regular,
                SuggestionPriority.MEDIUM,
                f"{len(regular)} notes in wallet. "
                "Consolidating smallest notes will simplify transfers.",
            )
        )

    if len(live) > LOW_PRIORITY_MIN_NOTES and not suggestions:
        suggestions.append(
            suggestion(
                live,
                SuggestionPriority.LOW,
                "Optional cleanup: consolidating notes may improve future transaction efficiency.",
            )
        )

    return suggestions


def estimate_consolidation_cost(total_notes_involved: int) -> int:
    """Advisory cost: base cost plus a per-input cost."""
    if total_notes_involved < 0:
        raise ValueError(f"Note count must be non-negative, got {total_notes_involved}")
    return CONSOLIDATION_BASE_COST + CONSOLIDATION_PER_INPUT_COST * total_notes_involved


def should_consolidate(
    notes: Iterable[Note],
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    token_id: str | None = None,
) -> bool:
    return analyze_notes(notes, dust_threshold, token_id).should_consolidate


def get_consolidation_summary(
    notes: Iterable[Note],
    max_notes_per_batch: int = CONSOLIDATION_CIRCUIT_INPUTS,
    dust_threshold: int = DEFAULT_DUST_THRESHOLD,
    token_id: str | None = None,
) -> ConsolidationSummary:
    snapshot = list(notes)
    report = analyze_notes(snapshot, dust_threshold, token_id)
    plan = plan_consolidation(snapshot, max_notes_per_batch, token_id=token_id)

    if not report.should_consolidate:
        message = "Your wallet is well organized. No consolidation needed."
    elif report.dust_notes > 2:
        message = (
            f"You have {report.dust_notes} small notes that should be consolidated "
            "to improve wallet performance."
        )
    elif report.total_notes > 5:
        message = f"You have {report.total_notes} notes. Consolidating would simplify transfers."
    else:
        message = "Optional cleanup available."

    return ConsolidationSummary(
        total_notes=report.total_notes,
        dust_notes=report.dust_notes,
        total_balance=report.total_balance,
        should_consolidate=report.should_consolidate,
        estimated_batches=len(plan),
        message=message,
    )
