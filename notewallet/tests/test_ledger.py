"""
Tests for the in-memory ledger backend.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from notewallet.backends.memory import InMemoryLedger
from notewallet.wallet.models import ProgressStage


class TestInMemoryLedger:
    """Tests for InMemoryLedger."""

    def test_add_notes(self, ledger, token_id):
        notes = ledger.add_notes(token_id, [5, 6, 7])
        assert [n.leaf_index for n in notes] == [0, 1, 2]
        assert len({n.commitment for n in notes}) == 3
        assert ledger.balance(token_id) == 18

    def test_negative_fee_rejected(self):
        with pytest.raises(ValueError):
            InMemoryLedger(fee=-1)

    @pytest.mark.asyncio
    async def test_get_notes_by_token(self, ledger, token_id):
        ledger.add_notes(token_id, [1, 2])
        ledger.add_notes("sol", [3])
        notes = await ledger.get_notes(token_id)
        assert sorted(n.amount for n in notes) == [1, 2]

    @pytest.mark.asyncio
    async def test_submit_batch_merges(self, ledger, token_id):
        """Test that inputs are spent and one output is created."""
        notes = ledger.add_notes(token_id, [1, 2, 3, 10])
        progress = MagicMock()

        result = await ledger.submit_batch(notes[:3], on_progress=progress)

        assert result.error is None
        assert result.confirmation_handle
        assert await ledger.is_confirmed(result.confirmation_handle)
        assert await ledger.wait_for_confirmation(result.confirmation_handle, timeout=0.1)
        assert sorted(n.amount for n in ledger.unspent(token_id)) == [6, 10]
        assert all(ledger.notes[n.commitment].spent for n in notes[:3])
        assert [c.args[0] for c in progress.call_args_list] == [
            ProgressStage.GENERATING,
            ProgressStage.SUBMITTING,
        ]

    @pytest.mark.asyncio
    async def test_fee_conservation(self, token_id):
        """Test that sum(inputs) == output + fee."""
        ledger = InMemoryLedger(fee=4)
        notes = ledger.add_notes(token_id, [10, 20])

        await ledger.submit_batch(notes)

        assert ledger.balance(token_id) == 26
        assert ledger.fees_collected == 4

    @pytest.mark.asyncio
    async def test_double_spend_rejected(self, ledger, token_id):
        notes = ledger.add_notes(token_id, [1, 2, 3])
        await ledger.submit_batch(notes[:2])

        result = await ledger.submit_batch(notes[1:])

        assert result.confirmation_handle is None
        assert "already spent" in result.error
        assert len(ledger.submitted_batches) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("case", "message"),
        [
            ("empty", "Empty batch"),
            ("mixed", "mixes tokens"),
            ("duplicate", "Duplicate"),
        ],
    )
    async def test_invalid_batches(self, ledger, token_id, case, message):
        usdc = ledger.add_notes(token_id, [1, 2])
        sol = ledger.add_notes("sol", [3])
        batch = {"empty": [], "mixed": [usdc[0], sol[0]], "duplicate": [usdc[0], usdc[0]]}[case]

        result = await ledger.submit_batch(batch)

        assert message in result.error

    @pytest.mark.asyncio
    async def test_unknown_note_rejected(self, ledger, token_id, make_notes):
        ledger.add_notes(token_id, [1])
        result = await ledger.submit_batch(make_notes([999, 998]))
        assert "Unknown note" in result.error

    @pytest.mark.asyncio
    async def test_batch_below_fee_rejected(self, token_id):
        ledger = InMemoryLedger(fee=100)
        notes = ledger.add_notes(token_id, [1, 2])
        result = await ledger.submit_batch(notes)
        assert "below fee" in result.error

    @pytest.mark.asyncio
    async def test_visibility_lag(self, token_id):
        """Test that reads after a submission return the old view for a while."""
        ledger = InMemoryLedger(visibility_lag=1)
        notes = ledger.add_notes(token_id, [1, 2])
        await ledger.submit_batch(notes)

        stale = await ledger.get_notes(token_id)
        fresh = await ledger.get_notes(token_id)

        assert sorted(n.amount for n in stale) == [1, 2]
        assert [n.amount for n in fresh] == [3]

    @pytest.mark.asyncio
    async def test_unconfirmed_handle_times_out(self, ledger):
        assert not await ledger.wait_for_confirmation("missing", timeout=0.02, poll_interval=0.01)
