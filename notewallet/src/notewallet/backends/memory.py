"""
In-memory note ledger.

Implements both the note provider and the transaction executor over a local
note set. Used by the CLI simulator and in tests.
"""

from __future__ import annotations

import asyncio
import hashlib

from loguru import logger
from notecore.models import Note

from notewallet.backends.base import NoteProvider, TransactionExecutor
from notewallet.wallet.models import ProgressCallback, ProgressStage, SubmissionResult


class InMemoryLedger(NoteProvider, TransactionExecutor):
    """
    Local ledger that merges submitted batches into a single output note.

    Args:
        fee: Fee deducted from every merge (sum(inputs) == output + fee)
        latency: Seconds each submission takes
        visibility_lag: Number of get_notes() calls after a submission that
            still return the pre-submission view (simulates indexer lag)
    """

    def __init__(self, fee: int = 0, latency: float = 0.0, visibility_lag: int = 0):
        if fee < 0:
            raise ValueError(f"Fee must be non-negative, got {fee}")
        self.fee = fee
        self.latency = latency
        self.visibility_lag = visibility_lag

        self.notes: dict[bytes, Note] = {}
        self.submitted_batches: list[list[Note]] = []
        self.fees_collected = 0
        self._confirmed: set[str] = set()
        self._next_leaf_index = 0
        self._stale_view: list[Note] | None = None
        self._stale_reads_remaining = 0

    def add_note(self, token_id: str, amount: int) -> Note:
        """Create an unspent note."""
        leaf_index = self._next_leaf_index
        self._next_leaf_index += 1
        commitment = hashlib.sha256(f"{token_id}:{leaf_index}:{amount}".encode()).digest()
        note = Note(commitment=commitment, token_id=token_id, amount=amount, leaf_index=leaf_index)
        self.notes[commitment] = note
        return note

    def add_notes(self, token_id: str, amounts: list[int]) -> list[Note]:
        return [self.add_note(token_id, amount) for amount in amounts]

    def unspent(self, token_id: str) -> list[Note]:
        return [n for n in self.notes.values() if n.token_id == token_id and not n.spent]

    def balance(self, token_id: str) -> int:
        return sum(n.amount for n in self.unspent(token_id))

    async def get_notes(self, token_id: str) -> list[Note]:
        if self._stale_reads_remaining > 0 and self._stale_view is not None:
            self._stale_reads_remaining -= 1
            return [n for n in self._stale_view if n.token_id == token_id]
        return self.unspent(token_id)

    def _validate_batch(self, notes: list[Note]) -> str | None:
        if not notes:
            return "Empty batch"
        if len({n.token_id for n in notes}) != 1:
            return "Batch mixes tokens"
        if len({n.commitment for n in notes}) != len(notes):
            return "Duplicate note in batch"
        for note in notes:
            current = self.notes.get(note.commitment)
            if current is None:
                return f"Unknown note {note.short_id()}"
            if current.spent:
                return f"Note {note.short_id()} already spent"
        if sum(n.amount for n in notes) < self.fee:
            return f"Batch total below fee of {self.fee}"
        return None

    async def submit_batch(
        self, notes: list[Note], on_progress: ProgressCallback | None = None
    ) -> SubmissionResult:
        if on_progress:
            on_progress(ProgressStage.GENERATING, None, None)

        error = self._validate_batch(notes)
        if error:
            logger.warning(f"Rejected batch: {error}")
            return SubmissionResult(error=error)

        if on_progress:
            on_progress(ProgressStage.SUBMITTING, None, None)
        if self.latency:
            await asyncio.sleep(self.latency)

        # Re-check after the await: another submission may have spent a note
        error = self._validate_batch(notes)
        if error:
            logger.warning(f"Rejected batch: {error}")
            return SubmissionResult(error=error)

        if self.visibility_lag:
            self._stale_view = [n for n in self.notes.values() if not n.spent]
            self._stale_reads_remaining = self.visibility_lag

        for note in notes:
            self.notes[note.commitment] = note.model_copy(update={"spent": True})

        merged_amount = sum(n.amount for n in notes) - self.fee
        self.fees_collected += self.fee
        output = self.add_note(notes[0].token_id, merged_amount)
        self.submitted_batches.append(list(notes))

        handle = hashlib.sha256(b"".join(n.commitment for n in notes)).hexdigest()
        self._confirmed.add(handle)
        logger.debug(
            f"Merged {len(notes)} notes into {output.short_id()} "
            f"(amount={merged_amount}, fee={self.fee})"
        )
        return SubmissionResult(confirmation_handle=handle)

    async def is_confirmed(self, confirmation_handle: str) -> bool:
        return confirmation_handle in self._confirmed
