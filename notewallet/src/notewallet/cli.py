"""
Note Wallet CLI - Analyze, select and consolidate note sets.

Commands operate on synthetic note sets given as a list of amounts, backed by
an in-memory ledger.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Annotated

import typer
from loguru import logger
from notecore.fees import OperationKind, ProtocolFeeConfig, calculate_protocol_fee
from notecore.models import Note

from notewallet.backends.memory import InMemoryLedger
from notewallet.config import ConsolidationConfig, SelectionOptions, get_settings
from notewallet.wallet.fragmentation import analyze_notes
from notewallet.wallet.models import ProgressStage, SelectionStrategy
from notewallet.wallet.orchestrator import ConsolidationOrchestrator
from notewallet.wallet.planner import (
    estimate_consolidation_cost,
    get_consolidation_summary,
    plan_consolidation,
    suggest_consolidation,
)
from notewallet.wallet.selector import select_notes

app = typer.Typer(
    name="note-wallet",
    help="Note selection and consolidation",
    add_completion=False,
)

AmountsArg = Annotated[list[int], typer.Argument(help="Note amounts in smallest units")]
LogLevelOpt = Annotated[str, typer.Option("--log-level", "-l", help="Log level")]


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _build_ledger(token_id: str, amounts: list[int], fee: int = 0) -> InMemoryLedger:
    if any(amount < 0 for amount in amounts):
        logger.error("Note amounts must be non-negative")
        raise typer.Exit(1)
    ledger = InMemoryLedger(fee=fee)
    ledger.add_notes(token_id, amounts)
    return ledger


def _format_notes(notes: list[Note]) -> str:
    # planned placeholders are shown in angle brackets
    return "[" + ", ".join(f"<{n.amount}>" if n.is_planned else str(n.amount) for n in notes) + "]"


@app.command()
def analyze(
    amounts: AmountsArg,
    dust_threshold: Annotated[
        int | None, typer.Option("--dust-threshold", "-d", help="Dust threshold")
    ] = None,
    log_level: LogLevelOpt = "INFO",
) -> None:
    """Show the fragmentation report for a note set."""
    setup_logging(log_level)
    settings = get_settings()
    threshold = dust_threshold if dust_threshold is not None else settings.dust_threshold

    notes = _build_ledger(settings.token_id, amounts).unspent(settings.token_id)
    report = analyze_notes(notes, threshold)
    summary = get_consolidation_summary(
        notes, settings.max_notes_per_batch, dust_threshold=threshold
    )

    print(f"\nNotes:              {report.total_notes}")
    print(f"Dust notes:         {report.dust_notes} (< {threshold})")
    print(f"Balance:            {report.total_balance:,}")
    print(f"Largest / smallest: {report.largest_note:,} / {report.smallest_note:,}")
    print(f"Fragmentation:      {report.fragmentation_score}/100")
    print(f"Should consolidate: {'yes' if report.should_consolidate else 'no'}")
    print(f"\n{summary.message}")

    for suggestion in suggest_consolidation(
        notes, settings.max_notes_per_batch, dust_threshold=threshold
    ):
        print(
            f"  [{suggestion.priority.value}] merge {_format_notes(suggestion.notes)} "
            f"-> {suggestion.resulting_amount:,}: {suggestion.reason}"
        )


@app.command()
def select(
    amounts: AmountsArg,
    target: Annotated[int, typer.Option("--target", "-t", min=1, help="Amount to spend")],
    max_inputs: Annotated[
        int, typer.Option("--max-inputs", "-m", min=1, help="Maximum input notes")
    ] = 2,
    strategy: Annotated[
        SelectionStrategy, typer.Option("--strategy", "-s", help="Selection order")
    ] = SelectionStrategy.SMALLEST_FIRST,
    fee: Annotated[int, typer.Option("--fee", min=0, help="Fee added to the target")] = 0,
    operation: Annotated[
        OperationKind | None,
        typer.Option("--operation", "-o", help="Add the default protocol fee of this operation"),
    ] = None,
    log_level: LogLevelOpt = "INFO",
) -> None:
    """Select notes to fund a spend."""
    setup_logging(log_level)
    settings = get_settings()

    if operation is not None:
        protocol_fee = calculate_protocol_fee(target, operation, ProtocolFeeConfig())
        logger.info(
            f"Protocol fee for {operation.value}: {protocol_fee.fee_amount} "
            f"({protocol_fee.fee_bps} bps)"
        )
        fee += protocol_fee.fee_amount

    notes = _build_ledger(settings.token_id, amounts).unspent(settings.token_id)
    options = SelectionOptions(strategy=strategy, max_inputs=max_inputs, fee_amount=fee)
    result = select_notes(notes, target, options)

    if not result.ok:
        error = result.error.value if result.error else "unknown"
        print(f"\nSelection failed ({error}): {result.message}")
        if result.needs_consolidation:
            print("Run 'note-wallet consolidate' with the same target first.")
        raise typer.Exit(1)

    print(f"\nSelected: {_format_notes(result.notes)}")
    print(f"Total:    {result.total_amount:,}")
    print(f"Change:   {result.change_amount:,}")


@app.command()
def plan(
    amounts: AmountsArg,
    batch_size: Annotated[
        int | None, typer.Option("--batch-size", "-k", min=2, help="Notes merged per batch")
    ] = None,
    log_level: LogLevelOpt = "INFO",
) -> None:
    """Show the consolidation plan for a note set."""
    setup_logging(log_level)
    settings = get_settings()
    width = batch_size or settings.max_notes_per_batch

    notes = _build_ledger(settings.token_id, amounts).unspent(settings.token_id)
    consolidation_plan = plan_consolidation(notes, width)

    if not consolidation_plan.batches:
        print("\nNothing to consolidate.")
        return

    print(
        f"\n{len(consolidation_plan)} batch(es), estimate {consolidation_plan.estimated_batches}"
    )
    for batch in consolidation_plan.batches:
        deps = f"  (uses batch {', '.join(map(str, batch.depends_on))})" if batch.sources else ""
        print(
            f"  Batch {batch.batch_number}: {_format_notes(batch.notes)} "
            f"-> {batch.total_amount:,}{deps}"
        )
    cost = estimate_consolidation_cost(consolidation_plan.total_inputs)
    print(f"\nEstimated cost: {cost:,}")


@app.command()
def consolidate(
    amounts: AmountsArg,
    target: Annotated[
        int | None, typer.Option("--target", "-t", min=1, help="Upcoming spend amount")
    ] = None,
    max_inputs: Annotated[
        int | None, typer.Option("--max-inputs", "-m", min=1, help="Inputs of the upcoming spend")
    ] = None,
    batch_size: Annotated[
        int | None, typer.Option("--batch-size", "-k", min=2, help="Notes merged per batch")
    ] = None,
    fee: Annotated[int, typer.Option("--fee", min=0, help="Fee per merge")] = 0,
    log_level: LogLevelOpt = "INFO",
) -> None:
    """Consolidate a note set on an in-memory ledger."""
    setup_logging(log_level)
    settings = get_settings()
    ledger = _build_ledger(settings.token_id, amounts, fee=fee)

    overrides: dict[str, object] = {"settle_timeout_sec": 0}
    if batch_size is not None:
        overrides["max_notes_per_batch"] = batch_size
    if max_inputs is not None:
        overrides["max_inputs"] = max_inputs
    config = settings.consolidation_config(**overrides)

    ok = asyncio.run(_run_consolidation(ledger, config, target))
    if not ok:
        raise typer.Exit(1)


async def _run_consolidation(
    ledger: InMemoryLedger, config: ConsolidationConfig, target: int | None
) -> bool:
    """Consolidation implementation."""
    orchestrator = ConsolidationOrchestrator(ledger, ledger, config)

    def on_progress(stage: ProgressStage, current: int | None, total: int | None) -> None:
        if stage == ProgressStage.PREPARING:
            logger.info(f"Batch {current}/{total}: preparing")

    try:
        result = await orchestrator.consolidate(on_progress=on_progress, target_amount=target)
    finally:
        await ledger.close()

    state = orchestrator.state
    print(f"\nStatus:  {result.status.value}")
    print(
        f"Batches: {result.batches_submitted} "
        f"(progress {state.current_batch}/{state.total_batches})"
    )
    remaining = sorted(ledger.unspent(config.token_id), key=lambda n: n.amount)
    print(f"Notes:   {_format_notes(remaining)}")
    if ledger.fees_collected:
        print(f"Fees:    {ledger.fees_collected:,}")
    if result.error:
        print(f"Error:   {result.error}")
    return result.success


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
