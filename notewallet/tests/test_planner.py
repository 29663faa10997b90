"""
Tests for consolidation planning, suggestions and cost estimates.
"""

from __future__ import annotations

import pytest

from notewallet.wallet.models import SuggestionPriority
from notewallet.wallet.planner import (
    estimate_batch_count,
    estimate_consolidation_cost,
    get_consolidation_summary,
    plan_consolidation,
    should_consolidate,
    suggest_consolidation,
)


def _amounts(notes) -> list[int]:
    return [n.amount for n in notes]


class TestEstimateBatchCount:
    """Tests for the advisory logarithmic estimate."""

    @pytest.mark.parametrize(
        ("notes", "width", "expected"),
        [
            (0, 3, 0),
            (1, 3, 0),
            (2, 3, 1),
            (3, 3, 1),
            (4, 3, 2),
            (5, 3, 2),
            (9, 3, 2),
            (10, 3, 3),
            (8, 2, 3),
            (9, 2, 4),
        ],
    )
    def test_estimate(self, notes: int, width: int, expected: int) -> None:
        assert estimate_batch_count(notes, width) == expected

    def test_width_below_two_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least 2"):
            estimate_batch_count(5, 1)


class TestPlanConsolidation:
    """Tests for plan_consolidation."""

    def test_five_equal_notes(self, make_notes) -> None:
        """[1,1,1,1,1] at width 3: merge three ones, then [1,1,3]."""
        plan = plan_consolidation(make_notes([1, 1, 1, 1, 1]), 3)

        assert plan.estimated_batches == 2
        assert len(plan) == 2

        first, second = plan.batches
        assert _amounts(first.notes) == [1, 1, 1]
        assert first.total_amount == 3
        assert not first.sources

        assert _amounts(second.notes) == [1, 1, 3]
        assert second.notes[-1].is_planned
        assert second.depends_on == [1]
        assert second.total_amount == 5

    def test_batches_respect_width(self, make_notes) -> None:
        plan = plan_consolidation(make_notes(list(range(1, 12))), 3)
        assert all(2 <= len(b.notes) <= 3 for b in plan.batches)

    def test_batch_count_exact(self, make_notes) -> None:
        """Test that n notes need ceil((n - 1) / (k - 1)) merges."""
        for count in range(2, 15):
            for width in (2, 3, 4):
                plan = plan_consolidation(make_notes([10] * count), width)
                assert len(plan) == -(-(count - 1) // (width - 1))

    def test_amount_conserved(self, make_notes) -> None:
        """Test that the final merge carries the whole balance."""
        amounts = [7, 1, 300, 2, 45, 9, 9, 1_000]
        plan = plan_consolidation(make_notes(amounts), 3)
        assert plan.batches[-1].total_amount == sum(amounts)
        for batch in plan.batches:
            for note in batch.notes:
                if note.is_planned:
                    producer = plan.batches[batch.sources[note.commitment] - 1]
                    assert note.amount == producer.total_amount

    def test_real_notes_used_once(self, make_notes) -> None:
        notes = make_notes([5, 4, 3, 2, 1, 6, 7])
        plan = plan_consolidation(notes, 3)
        used = [n.commitment for b in plan.batches for n in b.notes if not n.is_planned]
        assert sorted(used) == sorted(n.commitment for n in notes)

    def test_smallest_first(self, make_notes) -> None:
        """Test that dust is merged before larger notes."""
        plan = plan_consolidation(make_notes([500, 1, 40, 2, 3]), 3)
        assert _amounts(plan.batches[0].notes) == [1, 2, 3]

    def test_target_note_count(self, make_notes) -> None:
        """Test that planning stops at the requested note count."""
        plan = plan_consolidation(make_notes([1, 1, 1, 1, 1]), 3, target_note_count=2)
        assert len(plan) == 2
        assert _amounts(plan.batches[0].notes) == [1, 1, 1]
        # Only two notes merge so that two remain
        assert len(plan.batches[1].notes) == 2

    def test_nothing_to_plan(self, make_notes) -> None:
        assert len(plan_consolidation(make_notes([5]), 3)) == 0
        assert len(plan_consolidation(make_notes([]), 3)) == 0

    def test_ignores_spent_and_zero_notes(self, make_notes) -> None:
        plan = plan_consolidation(make_notes([0, 4, 5, 6], spent={3}), 3)
        assert len(plan) == 1
        assert _amounts(plan.batches[0].notes) == [4, 5]

    def test_invalid_arguments(self, make_notes) -> None:
        with pytest.raises(ValueError):
            plan_consolidation(make_notes([1, 2]), 1)
        with pytest.raises(ValueError):
            plan_consolidation(make_notes([1, 2]), 3, target_note_count=0)


class TestSuggestConsolidation:
    """Tests for suggest_consolidation."""

    def test_dust_is_high_priority(self, make_notes) -> None:
        suggestions = suggest_consolidation(make_notes([10, 20, 30, 40, 5_000]), 3)
        assert suggestions[0].priority == SuggestionPriority.HIGH
        assert _amounts(suggestions[0].notes) == [10, 20, 30]
        assert suggestions[0].resulting_amount == 60
        assert suggestions[0].notes_reduced == 2
        assert "4 dust notes" in suggestions[0].reason

    def test_many_regular_notes_medium_priority(self, make_notes) -> None:
        suggestions = suggest_consolidation(make_notes([2_000] * 6), 3)
        assert [s.priority for s in suggestions] == [SuggestionPriority.MEDIUM]

    def test_optional_cleanup_low_priority(self, make_notes) -> None:
        suggestions = suggest_consolidation(make_notes([2_000, 3_000, 4_000]), 3)
        assert [s.priority for s in suggestions] == [SuggestionPriority.LOW]
        assert suggestions[0].notes_reduced == 2

    def test_no_suggestions(self, make_notes) -> None:
        assert suggest_consolidation(make_notes([2_000, 3_000]), 3) == []
        assert suggest_consolidation(make_notes([2_000]), 3) == []


class TestSummaryAndCost:
    """Tests for summaries and cost estimates."""

    def test_cost(self) -> None:
        assert estimate_consolidation_cost(0) == 100_000
        assert estimate_consolidation_cost(3) == 250_000

    def test_negative_cost_input_rejected(self) -> None:
        with pytest.raises(ValueError):
            estimate_consolidation_cost(-1)

    def test_should_consolidate(self, make_notes) -> None:
        assert should_consolidate(make_notes([1, 1, 1]))
        assert not should_consolidate(make_notes([5_000, 5_000]))

    def test_summary_well_organized(self, make_notes) -> None:
        summary = get_consolidation_summary(make_notes([5_000, 5_000]))
        assert not summary.should_consolidate
        assert summary.estimated_batches == 1
        assert "well organized" in summary.message

    def test_summary_dust(self, make_notes) -> None:
        summary = get_consolidation_summary(make_notes([1, 2, 3, 4, 5_000]))
        assert summary.should_consolidate
        assert summary.dust_notes == 4
        assert summary.total_balance == 5_010
        assert summary.estimated_batches == 2
        assert "4 small notes" in summary.message

    def test_summary_optional_cleanup(self, make_notes) -> None:
        """Test five notes with two dust and no dominant note (score 45)."""
        summary = get_consolidation_summary(make_notes([999, 999, 2_000, 2_000, 2_000]))
        assert summary.should_consolidate
        assert summary.message == "Optional cleanup available."
