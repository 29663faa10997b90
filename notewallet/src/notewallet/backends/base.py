"""
Base interfaces for note providers and transaction executors.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod

from notecore.models import Note

from notewallet.wallet.models import ProgressCallback, SubmissionResult


class NoteProvider(ABC):
    """
    Source of note snapshots.

    Implementations must reflect the spends of confirmed batches before the
    next call returns.
    """

    @abstractmethod
    async def get_notes(self, token_id: str) -> list[Note]:
        """Get the current unspent notes for a token"""

    async def close(self) -> None:
        """Close provider connection"""
        pass


class TransactionExecutor(ABC):
    """
    Submits note batches as merge operations.

    Proof generation and ledger transport live behind this interface.
    """

    @abstractmethod
    async def submit_batch(
        self, notes: list[Note], on_progress: ProgressCallback | None = None
    ) -> SubmissionResult:
        """
        Submit notes as one merge operation.

        Validation failures (e.g. a note already spent) are returned in
        SubmissionResult.error rather than raised.
        """

    @abstractmethod
    async def is_confirmed(self, confirmation_handle: str) -> bool:
        """Check whether a submitted operation has been confirmed"""

    async def wait_for_confirmation(
        self,
        confirmation_handle: str,
        timeout: float,
        poll_interval: float = 0.5,
    ) -> bool:
        """
        Wait until a submitted operation is confirmed.

        Default implementation polls is_confirmed().

        Returns:
            True if confirmed within timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            if await self.is_confirmed(confirmation_handle):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Close executor connection"""
        pass
