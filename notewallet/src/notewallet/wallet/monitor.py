"""
Auto-consolidation monitor.

Periodically analyzes the note snapshot and raises a recommendation when
policy thresholds are crossed. Recommendations are advisory: the monitor
never runs consolidation itself.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from notecore.models import Note

from notewallet.config import AutoConsolidationConfig
from notewallet.wallet.fragmentation import analyze_notes
from notewallet.wallet.models import (
    AutoConsolidationState,
    ConsolidationSuggestion,
    FragmentationReport,
)
from notewallet.wallet.planner import estimate_consolidation_cost, suggest_consolidation

NoteSource = Callable[[], Awaitable[list[Note]]]


class AutoConsolidationMonitor:
    """
    Background fragmentation monitor.

    The note source is any zero-argument coroutine function returning the
    current notes, e.g. ``lambda: provider.get_notes(token_id)``.
    """

    def __init__(
        self,
        config: AutoConsolidationConfig | None = None,
        note_provider: NoteSource | None = None,
        on_recommended: Callable[[FragmentationReport], None] | None = None,
    ):
        self.config = config or AutoConsolidationConfig()
        self.note_provider = note_provider
        self.on_recommended = on_recommended

        self._state = AutoConsolidationState(enabled=self.config.enabled)
        self._check_task: asyncio.Task[None] | None = None
        # Serializes start/stop so overlapping calls cannot spawn a second loop
        self._lifecycle_lock = asyncio.Lock()

    def set_note_provider(self, provider: NoteSource) -> None:
        self.note_provider = provider

    @property
    def running(self) -> bool:
        return self._check_task is not None and not self._check_task.done()

    async def start(self) -> None:
        """Run an initial check, then check every check_interval_ms."""
        async with self._lifecycle_lock:
            if self.running:
                return

            self._state.enabled = True
            await self.check()

            if self.config.check_interval_ms > 0:
                self._check_task = asyncio.create_task(self._check_loop())
                logger.info(
                    f"Auto-consolidation monitor started (every {self.config.check_interval_sec}s)"
                )
            else:
                logger.info("Auto-consolidation monitor enabled for on-demand checks only")

    async def stop(self) -> None:
        async with self._lifecycle_lock:
            if self._check_task:
                self._check_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._check_task
                self._check_task = None
                logger.info("Auto-consolidation monitor stopped")
            self._state.enabled = False

    async def _check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.check_interval_sec)
            await self.check()

    def _is_recommended(self, report: FragmentationReport) -> bool:
        return (
            report.fragmentation_score >= self.config.fragmentation_threshold
            or report.total_notes >= self.config.max_note_count
            or report.dust_notes >= self.config.max_dust_notes
        )

    async def check(self) -> FragmentationReport | None:
        """
        Analyze the current notes once.

        Returns:
            The report, or None without a note source or when reading fails
        """
        if self.note_provider is None:
            return None

        try:
            notes = await self.note_provider()
        except Exception as e:
            logger.error(f"Auto-consolidation check failed to read notes: {e}")
            return None

        report = analyze_notes(notes, self.config.dust_threshold)
        recommended = self._is_recommended(report)

        self._state.last_report = report
        self._state.last_check_at = datetime.now(UTC)
        self._state.is_recommended = recommended

        if recommended:
            logger.info(
                f"Consolidation recommended: score={report.fragmentation_score}, "
                f"notes={report.total_notes}, dust={report.dust_notes}"
            )
            if self.on_recommended:
                try:
                    self.on_recommended(report)
                except Exception as e:
                    logger.warning(f"Consolidation recommendation callback failed: {e}")

        return report

    async def update_config(self, **changes: Any) -> None:
        """Apply config changes; toggling ``enabled`` starts or stops the monitor."""
        self.config = AutoConsolidationConfig.model_validate(
            {**self.config.model_dump(), **changes}
        )

        if self.config.enabled and not self._state.enabled:
            await self.start()
        elif not self.config.enabled and self._state.enabled:
            await self.stop()
        elif self.running and "check_interval_ms" in changes:
            await self.stop()
            await self.start()

    def get_state(self) -> AutoConsolidationState:
        return AutoConsolidationState(
            enabled=self._state.enabled,
            is_recommended=self._state.is_recommended,
            last_report=self._state.last_report,
            last_check_at=self._state.last_check_at,
        )

    def get_last_report(self) -> FragmentationReport | None:
        return self._state.last_report

    def is_consolidation_recommended(self) -> bool:
        return self._state.is_recommended

    async def get_suggestions(self) -> list[ConsolidationSuggestion]:
        if self.note_provider is None:
            return []
        notes = await self.note_provider()
        return suggest_consolidation(notes, dust_threshold=self.config.dust_threshold)

    async def estimate_cost(self) -> int:
        """Advisory cost of consolidating every current note."""
        if self.note_provider is None:
            return 0
        notes = await self.note_provider()
        return estimate_consolidation_cost(len([n for n in notes if not n.spent]))
