"""
Consolidation orchestrator.

Drives merge batches until the note set is consolidated:
1. Re-read the unspent note snapshot from the note provider
2. Stop if at most one note remains, or if a pending spend target is already
   coverable within the input limit
3. Merge the smallest notes through the transaction executor
4. Wait for confirmation, then poll the provider until the spend is visible
5. Repeat, bounded by an iteration cap

States: idle -> consolidating -> {idle, error}. Only one run (or single-batch
execution) is active per orchestrator; concurrent calls are skipped.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import replace

from loguru import logger
from notecore.models import Note

from notewallet.backends.base import NoteProvider, TransactionExecutor
from notewallet.config import ConsolidationConfig
from notewallet.wallet.fragmentation import analyze_notes
from notewallet.wallet.models import (
    ConsolidationPhase,
    ConsolidationPlan,
    ConsolidationResult,
    ConsolidationState,
    ConsolidationStatus,
    FragmentationReport,
    ProgressCallback,
    ProgressStage,
)
from notewallet.wallet.planner import estimate_batch_count, plan_consolidation
from notewallet.wallet.selector import (
    count_notes_to_cover,
    eligible_notes,
    select_for_consolidation,
)


class CancellationToken:
    """Cooperative cancellation, checked once per iteration and before each submission."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ConsolidationOrchestrator:
    """
    Stateful consolidation driver for one token's notes.
    """

    def __init__(
        self,
        provider: NoteProvider,
        executor: TransactionExecutor,
        config: ConsolidationConfig,
        on_state_change: Callable[[ConsolidationState], None] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: Source of unspent note snapshots
            executor: Submits merge batches
            config: Consolidation configuration (token, batch width, bounds)
            on_state_change: Called with a copy of the state on every transition
        """
        self.provider = provider
        self.executor = executor
        self.config = config
        self.on_state_change = on_state_change

        # Single-flight guard; acquire(blocking=False) is an atomic test-and-set
        self._guard = threading.Lock()
        self._state = ConsolidationState()

        self.plan: ConsolidationPlan | None = None
        # batch number -> merged output note, for step-by-step execution
        self._merged_outputs: dict[int, Note] = {}

    @property
    def state(self) -> ConsolidationState:
        return self._state.copy()

    @property
    def is_consolidating(self) -> bool:
        return self._guard.locked()

    def _set_state(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)
        if self.on_state_change:
            try:
                self.on_state_change(self._state.copy())
            except Exception as e:
                logger.warning(f"State change callback failed: {e}")

    @staticmethod
    def _notify(
        on_progress: ProgressCallback | None,
        stage: ProgressStage,
        current: int | None = None,
        total: int | None = None,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(stage, current, total)
        except Exception as e:
            logger.warning(f"Progress callback failed at stage {stage.value}: {e}")

    async def _fetch_notes(self) -> list[Note]:
        notes = await self.provider.get_notes(self.config.token_id)
        return eligible_notes(notes, self.config.token_id)

    def _remaining_batches(
        self,
        notes: list[Note],
        target_amount: int | None,
        max_inputs: int,
        batch_width: int,
    ) -> int:
        """Advisory estimate of the batches still needed."""
        if target_amount is None:
            return estimate_batch_count(len(notes), batch_width)
        needed = count_notes_to_cover(notes, target_amount)
        if needed is None or needed <= max_inputs:
            return 0
        # Each batch removes batch_width - 1 notes from the spend
        return -(-(needed - max_inputs) // (batch_width - 1))

    def _termination(
        self, notes: list[Note], target_amount: int | None, max_inputs: int
    ) -> tuple[ConsolidationStatus | None, str | None]:
        """Check the stop conditions for a fresh snapshot."""
        if len(notes) <= 1:
            return ConsolidationStatus.COMPLETED, None
        if target_amount is not None:
            needed = count_notes_to_cover(notes, target_amount)
            if needed is None:
                balance = sum(n.amount for n in notes)
                return (
                    ConsolidationStatus.FAILED,
                    f"Insufficient balance: have {balance}, need {target_amount}",
                )
            if needed <= max_inputs:
                return ConsolidationStatus.TARGET_REACHABLE, None
        return None, None

    def _finish(
        self,
        status: ConsolidationStatus,
        handles: list[str],
        error: str | None = None,
    ) -> ConsolidationResult:
        if status == ConsolidationStatus.FAILED:
            self._set_state(phase=ConsolidationPhase.ERROR, is_analyzing=False, error=error)
            logger.error(f"Consolidation failed after {len(handles)} batch(es): {error}")
        elif status in (ConsolidationStatus.ITERATION_LIMIT, ConsolidationStatus.CANCELLED):
            self._set_state(phase=ConsolidationPhase.IDLE, is_analyzing=False)
            logger.warning(
                f"Consolidation stopped ({status.value}) at batch "
                f"{self._state.current_batch}/{self._state.total_batches}"
            )
        else:
            self._set_state(
                phase=ConsolidationPhase.IDLE,
                is_analyzing=False,
                total_batches=self._state.current_batch,
            )
            logger.info(f"Consolidation {status.value}: {len(handles)} batch(es) submitted")

        return ConsolidationResult(
            status=status,
            batches_submitted=len(handles),
            confirmation_handles=list(handles),
            error=error,
        )

    async def _execute_batch(
        self,
        notes: list[Note],
        on_progress: ProgressCallback | None,
        current: int,
        total: int,
    ) -> tuple[str | None, str | None]:
        """
        Submit one batch and wait for its confirmation.

        Returns:
            (confirmation_handle, None) on success, (None, error) otherwise
        """

        def executor_progress(
            stage: ProgressStage, batch: int | None = None, batches: int | None = None
        ) -> None:
            self._notify(on_progress, stage, batch or current, batches or total)

        logger.debug(
            f"Submitting batch {current}: {len(notes)} notes, "
            f"amount={sum(n.amount for n in notes)}"
        )
        try:
            result = await self.executor.submit_batch(notes, on_progress=executor_progress)
        except Exception as e:
            return None, f"Batch submission failed: {e}"

        if result.error:
            return None, result.error
        if not result.confirmation_handle:
            return None, "Executor returned no confirmation handle"

        self._notify(on_progress, ProgressStage.CONFIRMING, current, total)
        timeout = self.config.confirmation_timeout_sec
        try:
            confirmed = await self.executor.wait_for_confirmation(
                result.confirmation_handle, timeout=timeout
            )
        except Exception as e:
            return None, f"Waiting for confirmation failed: {e}"

        if not confirmed:
            return None, f"Batch {current} not confirmed within {timeout}s"

        return result.confirmation_handle, None

    async def _wait_for_settlement(self, spent: list[Note]) -> list[Note]:
        """
        Poll the note provider until the spent notes disappear from the snapshot.

        settle_timeout_sec is an upper bound; on timeout the latest snapshot is
        returned and a warning logged.
        """
        spent_commitments = {n.commitment for n in spent}
        deadline = time.monotonic() + self.config.settle_timeout_sec

        while True:
            notes = await self._fetch_notes()
            if not any(n.commitment in spent_commitments for n in notes):
                return notes
            if time.monotonic() >= deadline:
                logger.warning(
                    f"Note provider still lists spent notes after "
                    f"{self.config.settle_timeout_sec}s, continuing with latest snapshot"
                )
                return notes
            await asyncio.sleep(self.config.settle_poll_interval_sec)

    async def analyze(self) -> FragmentationReport:
        """Analyze the current note snapshot."""
        self._set_state(is_analyzing=True)
        try:
            notes = await self._fetch_notes()
            return analyze_notes(notes, self.config.dust_threshold)
        finally:
            self._set_state(is_analyzing=False)

    async def consolidate(
        self,
        on_progress: ProgressCallback | None = None,
        target_amount: int | None = None,
        max_inputs: int | None = None,
        *,
        max_notes_per_batch: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ConsolidationResult:
        """
        Merge notes until consolidated or until a pending spend becomes possible.

        Args:
            on_progress: Progress sink (stage, current batch, total batches)
            target_amount: Upcoming spend amount; stop once it fits in max_inputs notes
            max_inputs: Input limit of the upcoming spend (default from config)
            max_notes_per_batch: Override the configured batch width
            cancel_token: Cooperative cancellation

        Returns:
            ConsolidationResult; errors are reported in it, never raised
        """
        max_inputs = max_inputs if max_inputs is not None else self.config.max_inputs
        batch_width = (
            max_notes_per_batch
            if max_notes_per_batch is not None
            else self.config.max_notes_per_batch
        )

        if target_amount is not None and target_amount <= 0:
            return ConsolidationResult(
                status=ConsolidationStatus.FAILED,
                error=f"Target amount must be positive, got {target_amount}",
            )
        if max_inputs < 1:
            return ConsolidationResult(
                status=ConsolidationStatus.FAILED,
                error=f"max_inputs must be at least 1, got {max_inputs}",
            )
        if batch_width < 2:
            return ConsolidationResult(
                status=ConsolidationStatus.FAILED,
                error=f"max_notes_per_batch must be at least 2, got {batch_width}",
            )

        if not self._guard.acquire(blocking=False):
            logger.info("Consolidation already in progress, skipping")
            return ConsolidationResult(status=ConsolidationStatus.SKIPPED)

        try:
            return await self._run(
                on_progress, target_amount, max_inputs, batch_width, cancel_token
            )
        finally:
            self._guard.release()

    async def _run(
        self,
        on_progress: ProgressCallback | None,
        target_amount: int | None,
        max_inputs: int,
        batch_width: int,
        cancel_token: CancellationToken | None,
    ) -> ConsolidationResult:
        handles: list[str] = []
        self._set_state(
            phase=ConsolidationPhase.CONSOLIDATING,
            is_analyzing=True,
            current_batch=0,
            total_batches=0,
            error=None,
        )

        try:
            notes = await self._fetch_notes()
            total = self._remaining_batches(notes, target_amount, max_inputs, batch_width)
            self._set_state(is_analyzing=False, total_batches=total)
            logger.info(
                f"Starting consolidation of {self.config.token_id}: {len(notes)} notes, "
                f"~{total} batch(es)"
                + (f", target={target_amount} within {max_inputs} inputs" if target_amount else "")
            )

            for iteration in range(1, self.config.max_iterations + 1):
                if cancel_token and cancel_token.cancelled:
                    return self._finish(ConsolidationStatus.CANCELLED, handles)

                notes = await self._fetch_notes()
                status, error = self._termination(notes, target_amount, max_inputs)
                if status is not None:
                    return self._finish(status, handles, error)

                batch = select_for_consolidation(notes, batch_width)
                current = self._state.current_batch + 1
                total = max(self._state.total_batches, current)
                self._notify(on_progress, ProgressStage.PREPARING, current, total)

                if cancel_token and cancel_token.cancelled:
                    return self._finish(ConsolidationStatus.CANCELLED, handles)

                handle, error = await self._execute_batch(batch, on_progress, current, total)
                if error:
                    return self._finish(ConsolidationStatus.FAILED, handles, error)
                handles.append(handle)  # type: ignore[arg-type]

                self._notify(on_progress, ProgressStage.SYNCING, current, total)
                notes = await self._wait_for_settlement(batch)

                remaining = self._remaining_batches(notes, target_amount, max_inputs, batch_width)
                self._set_state(current_batch=current, total_batches=current + remaining)
                logger.debug(
                    f"Iteration {iteration}: batch {current} done, {len(notes)} notes left, "
                    f"~{remaining} batch(es) remaining"
                )

            # Iteration cap: the last batch may still have finished the job
            status, error = self._termination(notes, target_amount, max_inputs)
            if status is not None:
                return self._finish(status, handles, error)
            self._set_state(
                total_batches=max(self._state.total_batches, self._state.current_batch + 1)
            )
            return self._finish(ConsolidationStatus.ITERATION_LIMIT, handles)

        except Exception as e:
            return self._finish(ConsolidationStatus.FAILED, handles, f"Consolidation failed: {e}")

    async def prepare_plan(self) -> ConsolidationPlan:
        """
        Compute and store a plan for step-by-step execution with consolidate_batch().
        """
        if self.is_consolidating and self.plan is not None:
            logger.warning("Consolidation in progress, keeping the current plan")
            return self.plan

        self._set_state(is_analyzing=True)
        try:
            notes = await self._fetch_notes()
            self.plan = plan_consolidation(notes, self.config.max_notes_per_batch)
            self._merged_outputs.clear()
        finally:
            self._set_state(is_analyzing=False)

        self._set_state(
            phase=ConsolidationPhase.IDLE,
            current_batch=0,
            total_batches=len(self.plan),
            error=None,
        )
        logger.info(
            f"Planned {len(self.plan)} batch(es) for {self.config.token_id} "
            f"(estimate {self.plan.estimated_batches})"
        )
        return self.plan

    async def consolidate_batch(
        self, batch_index: int, on_progress: ProgressCallback | None = None
    ) -> ConsolidationResult:
        """
        Execute exactly one batch of the stored plan.

        Planned placeholders in the batch are resolved to the merge outputs of
        earlier batches executed through this method.
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Consolidation already in progress, skipping batch")
            return ConsolidationResult(status=ConsolidationStatus.SKIPPED)

        try:
            return await self._run_batch(batch_index, on_progress)
        finally:
            self._guard.release()

    async def _run_batch(
        self, batch_index: int, on_progress: ProgressCallback | None
    ) -> ConsolidationResult:
        if self.plan is None:
            return self._finish(
                ConsolidationStatus.FAILED, [], "No consolidation plan, call prepare_plan() first"
            )
        if not 0 <= batch_index < len(self.plan.batches):
            return self._finish(
                ConsolidationStatus.FAILED, [], f"Invalid batch index {batch_index}"
            )

        batch = self.plan.batches[batch_index]
        total = len(self.plan.batches)
        self._set_state(
            phase=ConsolidationPhase.CONSOLIDATING,
            current_batch=batch_index,
            total_batches=total,
            error=None,
        )

        try:
            self._notify(on_progress, ProgressStage.PREPARING, batch_index + 1, total)
            live = {n.commitment: n for n in await self._fetch_notes()}

            inputs: list[Note] = []
            for note in batch.notes:
                if note.is_planned:
                    source = batch.sources[note.commitment]
                    output = self._merged_outputs.get(source)
                    if output is None:
                        return self._finish(
                            ConsolidationStatus.FAILED,
                            [],
                            f"Batch {batch.batch_number} depends on batch {source}, "
                            "which has not been executed",
                        )
                    note = output
                if note.commitment not in live:
                    return self._finish(
                        ConsolidationStatus.FAILED,
                        [],
                        f"Note {note.short_id()} is no longer unspent, re-plan consolidation",
                    )
                inputs.append(live[note.commitment])

            handle, error = await self._execute_batch(inputs, on_progress, batch_index + 1, total)
            if error:
                return self._finish(ConsolidationStatus.FAILED, [], error)

            self._notify(on_progress, ProgressStage.SYNCING, batch_index + 1, total)
            after = await self._wait_for_settlement(inputs)
            output = _find_merged_output(after, set(live), inputs)
            if output is not None:
                self._merged_outputs[batch.batch_number] = output
            else:
                logger.warning(f"Could not identify merged output of batch {batch.batch_number}")

            self._set_state(phase=ConsolidationPhase.IDLE, current_batch=batch_index + 1)
            logger.info(f"Batch {batch.batch_number}/{total} consolidated")
            return ConsolidationResult(
                status=ConsolidationStatus.COMPLETED,
                batches_submitted=1,
                confirmation_handles=[handle],  # type: ignore[list-item]
            )

        except Exception as e:
            return self._finish(ConsolidationStatus.FAILED, [], f"Batch consolidation failed: {e}")


def _find_merged_output(
    after: list[Note], before: set[bytes], inputs: list[Note]
) -> Note | None:
    """The largest new note not exceeding the inputs' total."""
    limit = sum(n.amount for n in inputs)
    new_notes = [n for n in after if n.commitment not in before and n.amount <= limit]
    if not new_notes:
        return None
    return max(new_notes, key=lambda n: n.amount)
