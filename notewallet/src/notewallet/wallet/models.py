"""
Wallet data models for note analysis, selection and consolidation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from notecore.models import Note


class SelectionStrategy(str, Enum):
    GREEDY = "greedy"  # Largest notes first, minimizes input count
    SMALLEST_FIRST = "smallest-first"  # Consumes dust first


class SelectionError(str, Enum):
    NO_ELIGIBLE_NOTES = "no_eligible_notes"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    # Enough balance, but more notes needed than one operation can take
    EXCEEDS_MAX_INPUTS = "exceeds_max_inputs"


class ProgressStage(str, Enum):
    PREPARING = "preparing"
    GENERATING = "generating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SYNCING = "syncing"


# stage, current batch, total batches
ProgressCallback = Callable[[ProgressStage, int | None, int | None], None]


@dataclass
class FragmentationReport:
    """Fragmentation analysis of a note snapshot"""

    total_notes: int
    dust_notes: int
    largest_note: int
    smallest_note: int
    total_balance: int
    fragmentation_score: int  # 0-100, higher = more fragmented
    should_consolidate: bool


@dataclass
class SelectionResult:
    """Result of note selection: either notes or an error, never both"""

    notes: list[Note] = field(default_factory=list)
    error: SelectionError | None = None
    target_amount: int = 0
    message: str = ""

    def __post_init__(self) -> None:
        if self.notes and self.error is not None:
            raise ValueError("SelectionResult cannot carry both notes and an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_amount(self) -> int:
        return sum(n.amount for n in self.notes)

    @property
    def change_amount(self) -> int:
        return self.total_amount - self.target_amount if self.ok else 0

    @property
    def needs_consolidation(self) -> bool:
        return self.error == SelectionError.EXCEEDS_MAX_INPUTS


@dataclass
class ConsolidationBatch:
    """One merge operation of a consolidation plan"""

    notes: list[Note]
    batch_number: int
    # planned placeholder commitment -> batch number that produces it
    sources: dict[bytes, int] = field(default_factory=dict)

    @property
    def total_amount(self) -> int:
        return sum(n.amount for n in self.notes)

    @property
    def depends_on(self) -> list[int]:
        return sorted(set(self.sources.values()))


@dataclass
class ConsolidationPlan:
    """Ordered merge batches, smallest notes first"""

    batches: list[ConsolidationBatch] = field(default_factory=list)
    estimated_batches: int = 0  # advisory log estimate, used for progress only

    @property
    def total_inputs(self) -> int:
        return sum(len(b.notes) for b in self.batches)

    def __len__(self) -> int:
        return len(self.batches)


class SuggestionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class ConsolidationSuggestion:
    notes: list[Note]
    resulting_amount: int
    notes_reduced: int
    priority: SuggestionPriority
    reason: str


@dataclass
class ConsolidationSummary:
    """Read-only summary of a note snapshot for display"""

    total_notes: int
    dust_notes: int
    total_balance: int
    should_consolidate: bool
    estimated_batches: int
    message: str


class ConsolidationPhase(str, Enum):
    IDLE = "idle"
    CONSOLIDATING = "consolidating"
    ERROR = "error"


@dataclass
class ConsolidationState:
    phase: ConsolidationPhase = ConsolidationPhase.IDLE
    is_analyzing: bool = False
    current_batch: int = 0
    total_batches: int = 0
    error: str | None = None

    @property
    def is_consolidating(self) -> bool:
        return self.phase == ConsolidationPhase.CONSOLIDATING

    @property
    def is_incomplete(self) -> bool:
        """Run ended without error but with batches left (iteration cap)."""
        return self.error is None and self.current_batch < self.total_batches

    def copy(self) -> ConsolidationState:
        return replace(self)


class ConsolidationStatus(str, Enum):
    COMPLETED = "completed"  # at most one note left
    TARGET_REACHABLE = "target_reachable"  # target now spendable within max inputs
    ITERATION_LIMIT = "iteration_limit"
    CANCELLED = "cancelled"
    FAILED = "failed"
    SKIPPED = "skipped"  # another run holds the single-flight guard


@dataclass
class ConsolidationResult:
    status: ConsolidationStatus
    batches_submitted: int = 0
    confirmation_handles: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (ConsolidationStatus.COMPLETED, ConsolidationStatus.TARGET_REACHABLE)


@dataclass
class SubmissionResult:
    """Outcome of handing a batch to the transaction executor"""

    confirmation_handle: str | None = None
    error: str | None = None


@dataclass
class AutoConsolidationState:
    enabled: bool = False
    is_recommended: bool = False
    last_report: FragmentationReport | None = None
    last_check_at: datetime | None = None
